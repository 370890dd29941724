"""
Tests for change-password, forgot-password and reset-password.
"""

import logging
from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import models
from conftest import OTHER_STRONG_PASSWORD, STRONG_PASSWORD
from time_utils import utc_now

logger = logging.getLogger(__name__)


def change_password(client: TestClient, headers: dict, old: str, new: str):
    return client.post(
        "/user/change-password",
        json={"old_password": old, "new_password": new},
        headers=headers,
    )


def request_reset(client: TestClient, email: str):
    return client.post("/user/forgot-password", json={"email": email})


def reset(client: TestClient, email: str, token: str, new_password: str = OTHER_STRONG_PASSWORD):
    return client.post(
        "/user/reset-password",
        json={"email": email, "token": token, "new_password": new_password},
    )


# ============== Change password ==============


def test_change_password_wrong_old_password(client: TestClient, user_auth_headers):
    response = change_password(client, user_auth_headers, "Wr0ngOld!", OTHER_STRONG_PASSWORD)

    assert response.status_code == 401
    assert response.json()["message_key"] == "auth.incorrect_old_password"


def test_change_password_reuse_forbidden(client: TestClient, user_auth_headers):
    response = change_password(client, user_auth_headers, STRONG_PASSWORD, STRONG_PASSWORD)

    assert response.status_code == 403
    assert response.json()["message_key"] == "auth.password_reused"


def test_change_password_weak_new_password(client: TestClient, user_auth_headers):
    response = change_password(client, user_auth_headers, STRONG_PASSWORD, "short")

    assert response.status_code == 400
    assert any(error["field"] == "new_password" for error in response.json()["errors"])


def test_change_password_revokes_token_and_requires_relogin(
    client: TestClient, test_db: Session, regular_user: models.User, user_auth_headers
):
    response = change_password(client, user_auth_headers, STRONG_PASSWORD, OTHER_STRONG_PASSWORD)
    assert response.status_code == 200
    assert response.json()["message_key"] == "user.password_changed"

    # The token used for the change no longer passes the guard
    after = client.get("/user/me", headers=user_auth_headers)
    assert after.status_code == 401
    assert after.json()["message_key"] == "auth.token_blacklisted"

    # Old password is gone, new one works
    assert client.post("/user/login", json={"email": regular_user.email, "password": STRONG_PASSWORD}).status_code == 401
    relogin = client.post("/user/login", json={"email": regular_user.email, "password": OTHER_STRONG_PASSWORD})
    assert relogin.status_code == 200

    token = relogin.json()["token"]
    assert client.get("/user/me", headers={"Authorization": f"Bearer {token}"}).status_code == 200


# ============== Forgot / reset password ==============


def test_forgot_password_unknown_email(client: TestClient):
    response = request_reset(client, "ghost@test.com")

    assert response.status_code == 404
    assert response.json()["message_key"] == "user.not_found"


def test_forgot_password_stores_token_and_emails_link(
    client: TestClient, test_db: Session, regular_user: models.User, mailer
):
    response = request_reset(client, regular_user.email)

    assert response.status_code == 200
    assert response.json()["message_key"] == "user.reset_link_sent"

    test_db.refresh(regular_user)
    assert regular_user.reset_token
    assert regular_user.reset_token_expiry is not None

    assert len(mailer.sent) == 1
    assert mailer.sent[0]["to"] == regular_user.email
    assert f"/reset-password/{regular_user.reset_token}" in mailer.sent[0]["body"]


def test_reset_password_succeeds_once(client: TestClient, test_db: Session, regular_user: models.User):
    request_reset(client, regular_user.email)
    test_db.refresh(regular_user)
    token = regular_user.reset_token

    first = reset(client, regular_user.email, token)
    assert first.status_code == 200
    assert first.json()["message_key"] == "user.password_reset_success"

    test_db.refresh(regular_user)
    assert regular_user.reset_token is None
    assert regular_user.reset_token_expiry is None

    second = reset(client, regular_user.email, token, new_password="An0ther@Pass")
    assert second.status_code == 400
    assert second.json()["message_key"] == "auth.invalid_reset_token"

    login = client.post("/user/login", json={"email": regular_user.email, "password": OTHER_STRONG_PASSWORD})
    assert login.status_code == 200


def test_reset_password_expired_token(client: TestClient, test_db: Session, regular_user: models.User):
    request_reset(client, regular_user.email)
    test_db.refresh(regular_user)
    token = regular_user.reset_token

    regular_user.reset_token_expiry = utc_now() - timedelta(minutes=1)
    test_db.commit()

    response = reset(client, regular_user.email, token)

    assert response.status_code == 400
    assert response.json()["message_key"] == "auth.invalid_reset_token"


def test_reset_password_token_bound_to_email(
    client: TestClient, test_db: Session, regular_user: models.User, another_user: models.User
):
    request_reset(client, regular_user.email)
    test_db.refresh(regular_user)

    response = reset(client, another_user.email, regular_user.reset_token)

    assert response.status_code == 400


def test_new_reset_request_replaces_outstanding_token(client: TestClient, test_db: Session, regular_user: models.User):
    request_reset(client, regular_user.email)
    test_db.refresh(regular_user)
    first_token = regular_user.reset_token

    request_reset(client, regular_user.email)
    test_db.refresh(regular_user)

    assert regular_user.reset_token != first_token
    assert reset(client, regular_user.email, first_token).status_code == 400
