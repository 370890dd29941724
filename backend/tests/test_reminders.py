"""
Tests for the daily due-date reminder scan.
"""

import logging
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import models
from conftest import RecordingPushSender
from main import app
from services.reminders import list_tasks_due_on, reminder_hour, send_due_date_reminders
from time_utils import day_bounds, seconds_until

logger = logging.getLogger(__name__)

REMINDER_DAY = date(2030, 6, 15)


def at(hour: int, day: date = REMINDER_DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)


class ExplodingPushSender(RecordingPushSender):
    """Raises for one device address, records the rest."""

    def __init__(self, bad_address: str):
        super().__init__()
        self.bad_address = bad_address

    def send(self, device_address: str, title: str, body: str) -> bool:
        if device_address == self.bad_address:
            raise RuntimeError("push backend exploded")
        return super().send(device_address, title, body)


def test_list_tasks_due_on_selects_calendar_day(test_db: Session, make_task, regular_user):
    due_morning = make_task("Morning", assignee=regular_user, due_date=at(0))
    due_evening = make_task("Evening", assignee=regular_user, due_date=at(23))
    make_task("Tomorrow", assignee=regular_user, due_date=at(0, REMINDER_DAY + timedelta(days=1)))
    make_task("Yesterday", assignee=regular_user, due_date=at(23, REMINDER_DAY - timedelta(days=1)))
    deleted = make_task("Deleted", assignee=regular_user, due_date=at(12))
    deleted.is_deleted = True
    test_db.commit()

    rows = list_tasks_due_on(test_db, REMINDER_DAY)

    assert [(task.id, token) for task, token in rows] == [
        (due_morning.id, "device-regular"),
        (due_evening.id, "device-regular"),
    ]


def test_send_reminders(test_db: Session, make_task, regular_user, another_user):
    make_task("Report", assignee=regular_user, due_date=at(9))
    make_task("Review", assignee=another_user, due_date=at(10))
    make_task("Nobody", due_date=at(11))
    sender = RecordingPushSender()

    stats = send_due_date_reminders(test_db, sender, REMINDER_DAY)

    assert stats == {"due": 3, "sent": 2, "skipped": 1, "failed": 0}
    assert [m["to"] for m in sender.sent] == ["device-regular", "device-another"]
    assert sender.sent[0]["title"] == "Task Due Reminder"
    assert sender.sent[0]["body"] == 'Your task "Report" is due on 2030-06-15. Please complete it soon.'


def test_send_reminders_isolates_failures(test_db: Session, make_task, regular_user, another_user):
    make_task("Breaks", assignee=regular_user, due_date=at(9))
    make_task("Works", assignee=another_user, due_date=at(10))
    sender = ExplodingPushSender(bad_address="device-regular")

    stats = send_due_date_reminders(test_db, sender, REMINDER_DAY)

    assert stats["failed"] == 1
    assert stats["sent"] == 1
    assert [m["to"] for m in sender.sent] == ["device-another"]


def test_send_reminders_counts_rejected_deliveries(test_db: Session, make_task, regular_user):
    make_task("Report", assignee=regular_user, due_date=at(9))

    stats = send_due_date_reminders(test_db, RecordingPushSender(fail=True), REMINDER_DAY)

    assert stats["failed"] == 1
    assert stats["sent"] == 0


def test_deleted_assignee_gets_no_reminder(test_db: Session, make_task, regular_user):
    make_task("Report", assignee=regular_user, due_date=at(9))
    regular_user.is_deleted = True
    test_db.commit()
    sender = RecordingPushSender()

    stats = send_due_date_reminders(test_db, sender, REMINDER_DAY)

    assert stats["skipped"] == 1
    assert sender.sent == []


def test_day_bounds_half_open():
    start, end = day_bounds(REMINDER_DAY)

    assert start == at(0)
    assert end - start == timedelta(days=1)


def test_seconds_until_later_today_and_tomorrow():
    now = datetime(2030, 6, 15, 22, 30, tzinfo=timezone.utc)

    assert seconds_until(23, now) == 30 * 60
    assert seconds_until(0, now) == 90 * 60
    assert seconds_until(22, datetime(2030, 6, 15, 22, 0, tzinfo=timezone.utc)) == 24 * 3600


# ============== Schedule configuration ==============


def test_reminder_hour_reads_environment(monkeypatch):
    monkeypatch.setenv("REMINDER_HOUR_UTC", "7")

    assert reminder_hour() == 7


@pytest.mark.parametrize("raw", ["24", "-1", "noon"])
def test_reminder_hour_rejects_out_of_range(monkeypatch, raw):
    monkeypatch.setenv("REMINDER_HOUR_UTC", raw)

    with pytest.raises(ValueError):
        reminder_hour()


def test_bad_hour_ignored_while_job_disabled(monkeypatch):
    monkeypatch.setenv("REMINDER_HOUR_UTC", "25")
    monkeypatch.setenv("REMINDER_JOB_ENABLED", "false")

    with TestClient(app) as test_client:
        assert test_client.get("/health").status_code == 200
