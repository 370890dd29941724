"""
Daily due-date reminders.

Once a day, at REMINDER_HOUR_UTC, every live task due that UTC calendar day
gets one push reminder sent to its assignee. A failure on one task is logged
and counted; the scan carries on with the rest.
"""

import asyncio
import logging
import os
from datetime import date
from typing import Optional

from sqlalchemy import asc
from sqlalchemy.orm import Session

import models
from database import SessionLocal
from i18n import translate
from notifications import PushDispatcher, push_dispatcher
from time_utils import day_bounds, seconds_until, utc_today

logger = logging.getLogger(__name__)

def reminder_hour() -> int:
    """
    UTC hour of the daily scan, from REMINDER_HOUR_UTC (default 0).

    Raises:
        ValueError: if the value is not an integer between 0 and 23
    """
    raw = os.environ.get("REMINDER_HOUR_UTC", "0")
    try:
        hour = int(raw)
    except ValueError:
        raise ValueError(f"REMINDER_HOUR_UTC must be an integer, got {raw!r}")
    if not 0 <= hour <= 23:
        raise ValueError(f"REMINDER_HOUR_UTC must be between 0 and 23, got {hour}")
    return hour


def reminder_job_enabled() -> bool:
    return os.environ.get("REMINDER_JOB_ENABLED", "false").lower() in ("1", "true", "yes")


def list_tasks_due_on(db: Session, day: date) -> list[tuple[models.Task, Optional[str]]]:
    """
    Live tasks due on a UTC calendar day, paired with the assignee's push token.

    Unassigned tasks, and tasks whose assignee is deleted or has no push
    token, come back with a None token.
    """
    start, end = day_bounds(day)
    rows = (
        db.query(models.Task, models.User.push_token)
        .outerjoin(
            models.User,
            (models.User.id == models.Task.user_id) & (models.User.is_deleted == False),  # noqa: E712
        )
        .filter(
            models.Task.is_deleted == False,  # noqa: E712
            models.Task.due_date >= start,
            models.Task.due_date < end,
        )
        .order_by(asc(models.Task.due_date), asc(models.Task.id))
        .all()
    )
    logger.debug(f"{len(rows)} task(s) due on {day.isoformat()}")
    return [(task, push_token) for task, push_token in rows]


def send_due_date_reminders(db: Session, dispatcher: PushDispatcher, day: Optional[date] = None) -> dict:
    """
    Send one reminder per task due on the given day (today by default).

    Returns:
        Counts: {"due", "sent", "skipped", "failed"}
    """
    day = day or utc_today()
    stats = {"due": 0, "sent": 0, "skipped": 0, "failed": 0}

    for task, push_token in list_tasks_due_on(db, day):
        stats["due"] += 1
        if not push_token:
            stats["skipped"] += 1
            continue

        try:
            title = translate("notify.due_reminder_title")
            body = translate("notify.due_reminder_body", title=task.title, due_date=day.isoformat())
            delivered = dispatcher.send(push_token, title, body)
        except Exception as e:
            logger.error(f"Reminder for task {task.id} failed: {str(e)}")
            delivered = False

        if delivered:
            stats["sent"] += 1
        else:
            stats["failed"] += 1

    logger.info(
        f"Due-date reminders for {day.isoformat()}: {stats['due']} due, {stats['sent']} sent, "
        f"{stats['skipped']} skipped, {stats['failed']} failed"
    )
    return stats


def run_reminders_once(dispatcher: Optional[PushDispatcher] = None) -> dict:
    """Run one reminder scan in its own database session."""
    db = SessionLocal()
    try:
        return send_due_date_reminders(db, dispatcher or push_dispatcher)
    finally:
        db.close()


async def run_daily_reminders(hour: Optional[int] = None) -> None:
    """Sleep until the next run time, scan, repeat. Runs until cancelled."""
    if hour is None:
        hour = reminder_hour()
    logger.info(f"Reminder job started; runs daily at {hour:02d}:00 UTC")
    while True:
        delay = seconds_until(hour)
        logger.debug(f"Next reminder scan in {delay:.0f}s")
        await asyncio.sleep(delay)
        try:
            await asyncio.to_thread(run_reminders_once)
        except Exception as e:
            logger.error(f"Reminder scan failed: {str(e)}")
