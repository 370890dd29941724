"""
Tests for profile read/update and account deletion.
"""

import logging

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import models

logger = logging.getLogger(__name__)


def test_get_me(client: TestClient, regular_user: models.User, user_auth_headers):
    response = client.get("/user/me", headers=user_auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["message_key"] == "user.profile"
    assert body["user"] == {
        "id": regular_user.id,
        "full_name": "Regular User",
        "email": "user@test.com",
        "created_at": body["user"]["created_at"],
        "updated_at": body["user"]["updated_at"],
    }


def test_update_profile(client: TestClient, test_db: Session, regular_user: models.User, user_auth_headers):
    response = client.put("/user/update", json={"full_name": "Renamed User"}, headers=user_auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["modified"] is True
    assert body["message_key"] == "user.updated"
    assert body["user"]["full_name"] == "Renamed User"

    test_db.refresh(regular_user)
    assert regular_user.updated_by == regular_user.id


def test_update_profile_not_modified(client: TestClient, user_auth_headers):
    response = client.put(
        "/user/update",
        json={"full_name": "Regular User", "email": "user@test.com"},
        headers=user_auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["modified"] is False
    assert response.json()["message_key"] == "user.not_modified"


def test_update_profile_email_taken(client: TestClient, another_user: models.User, user_auth_headers):
    response = client.put("/user/update", json={"email": another_user.email}, headers=user_auth_headers)

    assert response.status_code == 409
    assert response.json()["message_key"] == "user.email_taken"


def test_delete_account_revokes_token(client: TestClient, test_db: Session, regular_user: models.User, user_auth_headers):
    response = client.delete("/user/delete", headers=user_auth_headers)

    assert response.status_code == 200
    assert response.json()["message_key"] == "user.deleted"

    test_db.refresh(regular_user)
    assert regular_user.is_deleted is True
    assert regular_user.deleted_by == regular_user.id
    assert regular_user.deleted_at is not None

    assert client.get("/user/me", headers=user_auth_headers).status_code == 401

    login = client.post("/user/login", json={"email": regular_user.email, "password": "Passw0rd@123"})
    assert login.status_code == 404


def test_delete_account_unassigns_tasks_and_detaches_comments(
    client: TestClient,
    test_db: Session,
    regular_user: models.User,
    another_user: models.User,
    user_auth_headers,
    make_task,
):
    task = make_task("Shared", assignee=another_user)
    own_task = make_task("Mine", assignee=regular_user)
    comment = models.Comment(content="hello", task_id=task.id, user_id=regular_user.id, created_by=regular_user.id)
    test_db.add(comment)
    test_db.commit()

    assert client.delete("/user/delete", headers=user_auth_headers).status_code == 200

    test_db.refresh(own_task)
    test_db.refresh(comment)
    assert own_task.user_id is None
    assert own_task.is_deleted is False
    assert comment.user_id is None
    assert comment.created_by == regular_user.id
    assert comment.is_deleted is False


def test_deleted_email_cannot_sign_up_again(client: TestClient, regular_user: models.User, user_auth_headers):
    client.delete("/user/delete", headers=user_auth_headers)

    response = client.post(
        "/user/signup",
        json={"full_name": "Again", "email": regular_user.email, "password": "Passw0rd@123"},
    )

    assert response.status_code == 409
