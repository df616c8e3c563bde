from datetime import date
from types import SimpleNamespace

import pytest
import requests

from conftest import TODAY, make_client
from trainer_hub import crud, notifications, scheduler, schemas
from trainer_hub.errors import NotificationError


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSender:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send_sms(self, to, body):
        if to in self.fail_for:
            raise NotificationError(f"SMS to {to} failed")
        self.sent.append((to, body))
        return f"SM{len(self.sent)}"

    def send_email(self, to, subject, html_body):
        if to in self.fail_for:
            raise NotificationError(f"Email to {to} failed")
        self.sent.append((to, subject, html_body))
        return f"email-{len(self.sent)}"


# --------------------
# Reminders
# --------------------

def test_render_reminder():
    message = notifications.render_reminder(
        notifications.DEFAULT_REMINDER_TEMPLATE, "Rachel Green", 60, "17:00:00"
    )
    assert message.startswith("Hi Rachel Green!")
    assert "60-minute" in message
    assert "at 17:00" in message


def test_build_reminders_for_tomorrow(db, client):
    kept = scheduler.schedule_session(
        db, schemas.SessionCreate(client_id=client.id, date="2026-10-20", time="09:00", duration=30)
    )
    scheduler.schedule_session(
        db, schemas.SessionCreate(client_id=client.id, date="2026-10-20", time="11:00", status="cancelled")
    )
    scheduler.schedule_session(db, schemas.SessionCreate(client_id=client.id, date="2026-10-21", time="09:00"))

    reminders = notifications.build_reminders(db, today=TODAY, template="{clientName} {duration} {time}")

    assert len(reminders) == 1
    assert reminders[0].session_id == kept.id
    assert reminders[0].message == "Rachel Green 30 09:00"
    assert reminders[0].phone == "+1 555 123 4567"
    assert reminders[0].email == "rachel@example.com"


def test_build_reminders_selected_sessions(db, client):
    first = scheduler.schedule_session(db, schemas.SessionCreate(client_id=client.id, date="2026-10-20", time="09:00"))
    scheduler.schedule_session(db, schemas.SessionCreate(client_id=client.id, date="2026-10-20", time="10:00"))

    reminders = notifications.build_reminders(db, today=TODAY, session_ids=[first.id])
    assert [r.session_id for r in reminders] == [first.id]


def reminder(name, phone="555-0100", email="someone@example.com"):
    return schemas.ReminderPreview(
        session_id=1, client_id=1, client_name=name, phone=phone, email=email,
        date="2026-10-20", time="09:00", duration=60, message=f"Hi {name}",
    )


def test_dispatcher_sms_results():
    sms = FakeSender(fail_for={"555-0199"})
    dispatcher = notifications.NotificationDispatcher(email_sender=FakeSender(), sms_sender=sms)

    results = dispatcher.send_reminders(
        [reminder("Rachel"), reminder("Ross", phone="555-0199"), reminder("Phoebe", phone=None)]
    )

    assert [r.success for r in results] == [True, False, False]
    assert results[0].message_id == "SM1"
    assert "failed" in results[1].error
    assert results[2].error == "No phone number on file"
    assert sms.sent == [("555-0100", "Hi Rachel")]


def test_dispatcher_email_reminders():
    email = FakeSender()
    dispatcher = notifications.NotificationDispatcher(email_sender=email, sms_sender=FakeSender())

    results = dispatcher.send_reminders([reminder("Rachel", email="rachel@example.com")], channel="email")

    assert results[0].success is True
    to, subject, html_body = email.sent[0]
    assert to == "rachel@example.com"
    assert subject == notifications.REMINDER_SUBJECT
    assert "Hi Rachel" in html_body


# --------------------
# Birthdays
# --------------------

@pytest.mark.parametrize(
    "birthday, expected",
    [
        ("1990-10-19", ("today", 0, "Today!")),
        ("1985-10-20", ("tomorrow", 1, "Tomorrow")),
        ("2000-10-24", ("soon", 5, "In 5 days")),
        ("2000-10-27", None),
        ("2000-10-18", None),
        ("not-a-date", None),
        (None, None),
    ],
)
def test_birthday_status(birthday, expected):
    assert notifications.birthday_status(birthday, TODAY) == expected


def test_birthday_status_wraps_into_next_year():
    assert notifications.birthday_status("1990-01-02", date(2026, 12, 30)) == ("soon", 3, "In 3 days")


def test_leap_day_birthday_in_common_year():
    assert notifications.birthday_status("1992-02-29", date(2026, 2, 27)) == ("tomorrow", 1, "Tomorrow")


def test_upcoming_birthdays_sorted(db):
    make_client(db, name="Later", email="later@example.com", birthday="1990-10-25")
    make_client(db, name="Now", email="now@example.com", birthday="1990-10-19")
    make_client(db, name="None", email="none@example.com")

    alerts = notifications.upcoming_birthdays(crud.get_clients(db), TODAY)
    assert [(a.client_name, a.status) for a in alerts] == [("Now", "today"), ("Later", "soon")]


def test_compose_birthday_email():
    client = SimpleNamespace(name="Rachel <Green>", email="rachel@example.com")
    subject, html = notifications.compose_birthday_email(client)

    assert subject == "🎉 Happy Birthday Rachel <Green>! 🎂"
    assert "Rachel &lt;Green&gt;" in html
    assert "<Green>" not in html


def test_send_birthday_email_uses_custom_text():
    email = FakeSender()
    dispatcher = notifications.NotificationDispatcher(email_sender=email, sms_sender=FakeSender())
    client = SimpleNamespace(name="Rachel", email="rachel@example.com")

    result = dispatcher.send_birthday_email(client, subject="Cheers", message="Have a great one")

    assert result.success is True
    assert email.sent[0][1] == "Cheers"
    assert "Have a great one" in email.sent[0][2]


# --------------------
# Providers
# --------------------

def test_resend_sender_posts_message(monkeypatch):
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return FakeResponse({"id": "re_123"})

    monkeypatch.setattr(notifications.requests, "post", fake_post)
    sender = notifications.ResendEmailSender("key", "Trainer <hi@example.com>", "https://api.resend.com/emails")

    assert sender.send_email("rachel@example.com", "Hello", "<p>Hi</p>") == "re_123"
    url, kwargs = calls[0]
    assert url == "https://api.resend.com/emails"
    assert kwargs["json"]["to"] == ["rachel@example.com"]
    assert kwargs["headers"]["Authorization"] == "Bearer key"


def test_resend_sender_requires_key():
    sender = notifications.ResendEmailSender("", "hi@example.com", "https://api.resend.com/emails")
    with pytest.raises(NotificationError):
        sender.send_email("rachel@example.com", "Hello", "<p>Hi</p>")


def test_resend_sender_http_error(monkeypatch):
    monkeypatch.setattr(notifications.requests, "post", lambda url, **kwargs: FakeResponse({}, 422))
    sender = notifications.ResendEmailSender("key", "hi@example.com", "https://api.resend.com/emails")
    with pytest.raises(NotificationError):
        sender.send_email("rachel@example.com", "Hello", "<p>Hi</p>")


def test_twilio_sender(monkeypatch):
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return FakeResponse({"sid": "SM42"})

    monkeypatch.setattr(notifications.requests, "post", fake_post)
    sender = notifications.TwilioSmsSender("AC1", "token", "+15550000")

    assert sender.send_sms("+15551111", "Hi") == "SM42"
    url, kwargs = calls[0]
    assert url.endswith("/Accounts/AC1/Messages.json")
    assert kwargs["data"] == {"To": "+15551111", "From": "+15550000", "Body": "Hi"}
    assert kwargs["auth"] == ("AC1", "token")


def test_twilio_sender_connection_error(monkeypatch):
    def fake_post(url, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(notifications.requests, "post", fake_post)
    sender = notifications.TwilioSmsSender("AC1", "token", "+15550000")
    with pytest.raises(NotificationError):
        sender.send_sms("+15551111", "Hi")
