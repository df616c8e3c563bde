# trainer_hub/notifications.py
"""
Session reminders and birthday greetings.

Messages are composed here and handed to two send capabilities: email through
the Resend HTTP API and SMS through the Twilio Messages API. Providers only
report success or failure; there is no delivery tracking.
"""
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import requests
from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy.orm import Session

from trainer_hub import models, schemas, scheduler
from trainer_hub.config import Settings, get_settings
from trainer_hub.dates import to_date
from trainer_hub.errors import InvalidDateError, NotificationError

logger = logging.getLogger(__name__)

templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
    autoescape=select_autoescape(["html"]),
)

DEFAULT_REMINDER_TEMPLATE = (
    "Hi {clientName}! Just a friendly reminder that you have a {duration}-minute "
    "training session scheduled for tomorrow at {time}. See you soon! 💪"
)
REMINDER_SUBJECT = "Training Session Reminder"

BIRTHDAY_SUBJECT = "🎉 Happy Birthday {name}! 🎂"
BIRTHDAY_MESSAGE = (
    "Dear {name},\n\n"
    "Wishing you a fantastic birthday filled with joy, laughter, and all your favorite things!\n\n"
    "Thank you for being such an amazing client. Here's to another year of achieving "
    "your fitness goals together!\n\n"
    "Have a wonderful celebration!\n\n"
    "Best wishes,\nYour Training Team"
)
BIRTHDAY_WINDOW_DAYS = 7


# --------------------
# Session reminders
# --------------------

def render_reminder(template: str, client_name: str, duration: int, time: str) -> str:
    return (
        template
        .replace("{clientName}", client_name)
        .replace("{duration}", str(duration))
        .replace("{time}", time[:5])
    )


def sessions_needing_reminder(db: Session, today: Optional[date] = None) -> List[models.Session]:
    """Tomorrow's bookings that are still on."""
    tomorrow = (today or date.today()) + timedelta(days=1)
    return [s for s in scheduler.get_sessions_for_day(db, tomorrow) if s.status != "cancelled"]


def build_reminders(
    db: Session,
    today: Optional[date] = None,
    template: Optional[str] = None,
    session_ids: Optional[Iterable[int]] = None,
) -> List[schemas.ReminderPreview]:
    template = template or DEFAULT_REMINDER_TEMPLATE
    wanted = set(session_ids) if session_ids is not None else None

    previews = []
    for s in sessions_needing_reminder(db, today):
        if wanted is not None and s.id not in wanted:
            continue
        client = s.client
        previews.append(
            schemas.ReminderPreview(
                session_id=s.id,
                client_id=s.client_id,
                client_name=s.client_name,
                phone=client.phone if client else None,
                email=client.email if client else None,
                date=s.date,
                time=s.time[:5],
                duration=s.duration,
                message=render_reminder(template, s.client_name, s.duration, s.time),
            )
        )
    return previews


# --------------------
# Birthdays
# --------------------

def _occurrence_in(year: int, born: date) -> date:
    try:
        return born.replace(year=year)
    except ValueError:
        # Feb 29 outside a leap year
        return date(year, 2, 28)


def birthday_status(birthday: Optional[str], today: Optional[date] = None) -> Optional[Tuple[str, int, str]]:
    """
    Where a birthday falls relative to today, ignoring the stored year.

    Returns (status, days_until, label) for birthdays within the next week,
    else None.
    """
    if not birthday:
        return None
    today = today or date.today()
    try:
        born = to_date(birthday)
    except InvalidDateError:
        return None

    upcoming = _occurrence_in(today.year, born)
    if upcoming < today:
        upcoming = _occurrence_in(today.year + 1, born)
    days_until = (upcoming - today).days

    if days_until == 0:
        return "today", 0, "Today!"
    if days_until == 1:
        return "tomorrow", 1, "Tomorrow"
    if days_until <= BIRTHDAY_WINDOW_DAYS:
        return "soon", days_until, f"In {days_until} days"
    return None


def upcoming_birthdays(clients: Iterable, today: Optional[date] = None) -> List[schemas.BirthdayAlert]:
    alerts = []
    for client in clients:
        status = birthday_status(client.birthday, today)
        if status is None:
            continue
        state, days_until, text = status
        alerts.append(
            schemas.BirthdayAlert(
                client_id=client.id,
                client_name=client.name,
                email=client.email,
                birthday=client.birthday,
                status=state,
                days_until=days_until,
                text=text,
            )
        )
    return sorted(alerts, key=lambda a: a.days_until)


def compose_birthday_email(
    client,
    subject: Optional[str] = None,
    message: Optional[str] = None,
) -> Tuple[str, str]:
    subject = subject or BIRTHDAY_SUBJECT.format(name=client.name)
    message = message or BIRTHDAY_MESSAGE.format(name=client.name)
    html = templates.get_template("birthday_email.html").render(client_name=client.name, message=message)
    return subject, html


def compose_reminder_email(message: str) -> str:
    return templates.get_template("reminder_email.html").render(heading=REMINDER_SUBJECT, message=message)


# --------------------
# Send capabilities
# --------------------

class ResendEmailSender:
    def __init__(self, api_key: str, sender: str, url: str, timeout: int = 10):
        self.api_key = api_key
        self.sender = sender
        self.url = url
        self.timeout = timeout

    def send_email(self, to: str, subject: str, html_body: str) -> Optional[str]:
        if not self.api_key:
            raise NotificationError("Resend API key not configured")
        try:
            response = requests.post(
                self.url,
                json={"from": self.sender, "to": [to], "subject": subject, "html": html_body},
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Error sending email to %s: %s", to, e)
            raise NotificationError(f"Email to {to} failed: {e}") from e

        message_id = response.json().get("id")
        logger.info("Email sent to %s (%s)", to, message_id)
        return message_id


class TwilioSmsSender:
    API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def __init__(self, account_sid: str, auth_token: str, from_number: str, timeout: int = 10):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    def send_sms(self, to: str, body: str) -> Optional[str]:
        if not (self.account_sid and self.auth_token and self.from_number):
            raise NotificationError("Twilio credentials not configured")
        try:
            response = requests.post(
                self.API_URL.format(sid=self.account_sid),
                data={"To": to, "From": self.from_number, "Body": body},
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Error sending SMS to %s: %s", to, e)
            raise NotificationError(f"SMS to {to} failed: {e}") from e

        message_id = response.json().get("sid")
        logger.info("SMS sent to %s (%s)", to, message_id)
        return message_id


class NotificationDispatcher:
    """Sends composed messages and reports one result per recipient."""

    def __init__(self, email_sender, sms_sender):
        self.email_sender = email_sender
        self.sms_sender = sms_sender

    def send_reminders(
        self,
        reminders: Iterable[schemas.ReminderPreview],
        channel: str = "sms",
    ) -> List[schemas.DeliveryResult]:
        results = []
        for reminder in reminders:
            recipient = reminder.phone if channel == "sms" else reminder.email
            if not recipient:
                results.append(
                    schemas.DeliveryResult(
                        client_name=reminder.client_name,
                        recipient="",
                        success=False,
                        error=f"No {'phone number' if channel == 'sms' else 'email'} on file",
                    )
                )
                continue
            try:
                if channel == "sms":
                    message_id = self.sms_sender.send_sms(recipient, reminder.message)
                else:
                    message_id = self.email_sender.send_email(
                        recipient, REMINDER_SUBJECT, compose_reminder_email(reminder.message)
                    )
            except NotificationError as e:
                results.append(
                    schemas.DeliveryResult(
                        client_name=reminder.client_name, recipient=recipient, success=False, error=str(e)
                    )
                )
                continue
            results.append(
                schemas.DeliveryResult(
                    client_name=reminder.client_name, recipient=recipient, success=True, message_id=message_id
                )
            )
        return results

    def send_birthday_email(
        self,
        client,
        subject: Optional[str] = None,
        message: Optional[str] = None,
    ) -> schemas.DeliveryResult:
        subject, html = compose_birthday_email(client, subject, message)
        message_id = self.email_sender.send_email(client.email, subject, html)
        return schemas.DeliveryResult(
            client_name=client.name, recipient=client.email, success=True, message_id=message_id
        )


def get_dispatcher(settings: Optional[Settings] = None) -> NotificationDispatcher:
    settings = settings or get_settings()
    return NotificationDispatcher(
        email_sender=ResendEmailSender(
            settings.RESEND_API_KEY, settings.EMAIL_FROM, settings.RESEND_API_URL, settings.NOTIFY_TIMEOUT
        ),
        sms_sender=TwilioSmsSender(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_PHONE_NUMBER,
            settings.NOTIFY_TIMEOUT,
        ),
    )
