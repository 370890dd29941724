"""
Outbound notification delivery: push messages and email.

Both dispatchers are best-effort. They log and swallow delivery failures and
return False, so a failed notification never fails the request that caused
it. Without credentials configured they run in development mode and only log
what they would have sent.
"""

import html
import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Optional

import httpx
from fastapi import BackgroundTasks

from i18n import translate

logger = logging.getLogger(__name__)

DEFAULT_PUSH_API_URL = "https://fcm.googleapis.com/fcm/send"


class PushDispatcher:
    """Sends FCM-style push notifications to a device address."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        server_key: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.api_url = api_url or os.environ.get("PUSH_API_URL", DEFAULT_PUSH_API_URL)
        self.server_key = server_key if server_key is not None else os.environ.get("PUSH_SERVER_KEY")
        self.timeout = timeout

        if not self.server_key:
            logger.warning("PUSH_SERVER_KEY not set. Push notifications run in development mode (logged only).")

    def send(self, device_address: str, title: str, body: str) -> bool:
        """
        Deliver one push message.

        Returns:
            True if the message was accepted (or logged in development mode), False on failure
        """
        if not device_address:
            logger.debug("Push skipped: no device address")
            return False

        if not self.server_key:
            logger.info(f"[DEV MODE] Would push '{title}': {body}")
            return True

        message = {
            "to": device_address,
            "notification": {"title": title, "body": body},
        }
        try:
            response = httpx.post(
                self.api_url,
                json=message,
                headers={"Authorization": f"key={self.server_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send push notification '{title}': {str(e)}")
            return False

        logger.info(f"Push notification sent: '{title}'")
        return True


class EmailSender:
    """Sends HTML email over SMTP."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_addr: Optional[str] = None,
        starttls: Optional[bool] = None,
        timeout: float = 15.0,
    ):
        self.host = host if host is not None else os.environ.get("SMTP_HOST", "")
        self.port = port or int(os.environ.get("SMTP_PORT", "587"))
        self.username = username if username is not None else os.environ.get("SMTP_USERNAME", "")
        self.password = password if password is not None else os.environ.get("SMTP_PASSWORD", "")
        self.from_addr = from_addr or os.environ.get("SMTP_FROM", "no-reply@localhost")
        if starttls is None:
            starttls = os.environ.get("SMTP_STARTTLS", "true").lower() in ("1", "true", "yes")
        self.starttls = starttls
        self.timeout = timeout

        if not self.host:
            logger.warning("SMTP_HOST not set. Emails run in development mode (logged only).")

    def send(self, to_addr: str, subject: str, html_body: str) -> bool:
        """
        Deliver one email.

        Returns:
            True if the SMTP server accepted the message (or it was logged in development mode)
        """
        if not self.host:
            logger.info(f"[DEV MODE] Would email '{subject}' to {to_addr}")
            return True

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.from_addr
        message["To"] = to_addr
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(host=self.host, port=self.port, timeout=self.timeout) as s:
                s.ehlo()
                if self.starttls:
                    s.starttls()
                    s.ehlo()
                if self.username and self.password:
                    s.login(self.username, self.password)
                s.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email '{subject}' to {to_addr}: {str(e)}")
            return False

        logger.info(f"Email sent: '{subject}' to {to_addr}")
        return True


push_dispatcher = PushDispatcher()
email_sender = EmailSender()


class Notifier:
    """
    Request-scoped facade used by the services.

    Message text is resolved from i18n keys when the notification is queued;
    delivery runs as a background task after the response has been sent.
    Without a BackgroundTasks instance, delivery happens inline.
    """

    def __init__(
        self,
        background_tasks: Optional[BackgroundTasks] = None,
        push_sender: Optional[PushDispatcher] = None,
        mailer: Optional[EmailSender] = None,
    ):
        self.background_tasks = background_tasks
        self.push_sender = push_sender or push_dispatcher
        self.mailer = mailer or email_sender

    @staticmethod
    def _deliver(func, *args) -> None:
        try:
            func(*args)
        except Exception as e:
            logger.error(f"Notification delivery raised {type(e).__name__}: {str(e)}")

    def _dispatch(self, func, *args) -> None:
        if self.background_tasks is not None:
            self.background_tasks.add_task(self._deliver, func, *args)
        else:
            self._deliver(func, *args)

    def push(self, device_address: Optional[str], title_key: str, body_key: str, **params) -> None:
        if not device_address:
            logger.debug(f"No push address registered, skipping '{title_key}'")
            return
        title = translate(title_key, **params)
        body = translate(body_key, **params)
        self._dispatch(self.push_sender.send, device_address, title, body)

    def email(self, to_addr: str, subject_key: str, body_key: str, **params) -> None:
        subject = translate(subject_key, **params)
        # Bodies are HTML
        body = translate(body_key, **{k: html.escape(str(v)) for k, v in params.items()})
        self._dispatch(self.mailer.send, to_addr, subject, body)


def get_notifier(background_tasks: BackgroundTasks) -> Notifier:
    """FastAPI dependency providing a Notifier bound to the request's background tasks."""
    return Notifier(background_tasks)
