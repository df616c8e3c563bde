from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from conftest import TestSessionLocal, set_balance, test_engine
from main import app, get_notifier
from trainer_hub import crud, notifications
from trainer_hub.database import Base, get_db
from trainer_hub.errors import NotificationError, PersistenceError


class RecordingSender:
    def __init__(self):
        self.sent = []

    def send_sms(self, to, body):
        self.sent.append((to, body))
        return "SM1"

    def send_email(self, to, subject, html_body):
        if to.endswith("@bounce.test"):
            raise NotificationError(f"Email to {to} failed")
        self.sent.append((to, subject))
        return "email-1"


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def api(sender):
    Base.metadata.create_all(bind=test_engine)
    seed = TestSessionLocal()
    crud.seed_default_packages(seed)
    seed.close()

    def override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifications.NotificationDispatcher(sender, sender)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=test_engine)


def create_client(api, **overrides):
    body = {
        "name": "Rachel Green",
        "email": "rachel@example.com",
        "phone": "+1 555 123 4567",
        "package": "10x PK 60MIN",
    }
    body.update(overrides)
    response = api.post("/clients/", json=body)
    assert response.status_code == 200
    return response.json()["client"]


def test_packages_endpoints(api):
    assert len(api.get("/packages/").json()) == 6

    created = api.post("/packages/", json={"name": "Trial", "sessions": 1, "duration": 30, "price": 0}).json()
    assert created["type"] == "30MIN"

    updated = api.put(f"/packages/{created['id']}", json={"duration": 60})
    assert updated.json()["type"] == "60MIN"

    assert api.delete(f"/packages/{created['id']}").json() == {"success": True}
    assert len(api.get("/packages/").json()) == 6
    assert api.delete("/packages/999").status_code == 404


def test_create_client_with_regular_slot(api):
    response = api.post(
        "/clients/",
        json={
            "name": "Monica Geller",
            "email": "monica@example.com",
            "phone": "555-0101",
            "package": "5x PK 30MIN",
            "regular_slot": "Tue 7:00 AM, Someday 9:00",
        },
    )
    body = response.json()

    assert response.status_code == 200
    assert len(body["recurring"]["sessions"]) == 4
    assert body["recurring"]["skipped_tokens"] == ["Someday 9:00"]
    assert body["client"]["sessions_left"] == 6


def test_create_client_missing_name(api):
    response = api.post("/clients/", json={"name": "", "email": "a@b.c", "phone": "1", "package": "x"})
    assert response.status_code == 422


def test_missing_client_is_404(api):
    assert api.get("/clients/999").status_code == 404
    assert api.delete("/clients/999").status_code == 404


def test_schedule_and_delete_session(api):
    client = create_client(api)

    booked = api.post("/sessions/", json={"client_id": client["id"], "date": "2026-10-21", "time": "17:00"})
    assert booked.status_code == 200
    session = booked.json()
    assert session["time"] == "17:00:00"
    assert api.get(f"/clients/{client['id']}").json()["sessions_left"] == 9

    slot = api.get("/calendar/slot", params={"date": "2026-10-21", "time": "5:00 PM"})
    assert slot.json()["id"] == session["id"]
    assert len(api.get("/calendar/day", params={"date": "2026-10-21"}).json()) == 1
    assert api.get(f"/sessions/{session['id']}/ordinal").json() == {"current": 1, "total": 10}

    deleted = api.delete(f"/sessions/{session['id']}", params={"client_id": client["id"]}).json()
    assert deleted["success"] is True
    assert deleted["client"]["sessions_left"] == 10
    assert deleted["warnings"] == []


def test_schedule_errors(api):
    client = create_client(api)

    bad_time = api.post("/sessions/", json={"client_id": client["id"], "date": "2026-10-21", "time": "25:00"})
    assert bad_time.status_code == 400

    missing = api.post("/sessions/", json={"client_id": 999, "date": "2026-10-21", "time": "10:00"})
    assert missing.status_code == 404

    db = TestSessionLocal()
    set_balance(db, client["id"], left=0)
    db.close()
    exhausted = api.post("/sessions/", json={"client_id": client["id"], "date": "2026-10-21", "time": "10:00"})
    assert exhausted.status_code == 409


def test_session_status_change(api):
    client = create_client(api)
    session = api.post("/sessions/", json={"client_id": client["id"], "date": "2026-10-21", "time": "10:00"}).json()

    done = api.post(f"/sessions/{session['id']}/status", json={"status": "completed"})
    assert done.json()["status"] == "completed"

    back = api.post(f"/sessions/{session['id']}/status", json={"status": "confirmed"})
    assert back.status_code == 409


def test_purchase_edit_and_delete(api):
    client = create_client(api)

    added = api.post(
        f"/clients/{client['id']}/purchases",
        json={"package_name": "5x PK 30MIN", "package_sessions": 5, "amount": 400},
    ).json()
    assert added["success"] is True
    assert added["updated_client"]["total_sessions"] == 15
    purchase_id = added["purchase"]["id"]

    edited = api.put(f"/purchases/{purchase_id}", json={"package_sessions": 8}).json()
    assert edited["session_difference"] == 3
    assert edited["client"]["total_sessions"] == 18
    assert edited["client"]["sessions_left"] == 18

    assert api.get("/purchases/revenue").json()["total_revenue"] == 400

    deleted = api.delete(f"/purchases/{purchase_id}").json()
    assert deleted["client"]["total_sessions"] == 10
    assert api.get("/purchases/", params={"client_id": client["id"]}).json() == []


def test_session_counts_preview(api):
    client = create_client(api)

    current = api.get(f"/clients/{client['id']}/session-counts").json()
    assert current["is_preview"] is False
    assert current["total_sessions"] == 10

    preview = api.get(f"/clients/{client['id']}/session-counts", params={"package": "5x PK 30MIN"}).json()
    assert preview["is_preview"] is True
    assert preview["total_sessions"] == 5


def test_payments_endpoints(api):
    client = create_client(api)

    payment = api.post("/payments/", json={"client_id": client["id"], "amount": 80, "payment_type": "Cash"}).json()
    assert payment["payment_status"] == "pending"

    updated = api.put(f"/payments/{payment['id']}", json={"payment_status": "completed"}).json()
    assert updated["payment_status"] == "completed"
    assert len(api.get("/payments/").json()) == 1


def test_import_clients(api):
    response = api.post(
        "/clients/import",
        json=[
            {"Name": "Alex Poll", "Email": "apoll@gmx.com", "Phone": "(929) 444-1403"},
            {"Email": "no-name@example.com"},
        ],
    )
    body = response.json()
    assert len(body["created"]) == 1
    assert body["failed"][0]["row"] == 2


def test_send_reminders(api, sender):
    client = create_client(api)
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    session = api.post("/sessions/", json={"client_id": client["id"], "date": tomorrow, "time": "10:00"}).json()

    preview = api.get("/notifications/reminders").json()
    assert [r["session_id"] for r in preview] == [session["id"]]

    results = api.post("/notifications/reminders/send", json={"session_ids": [session["id"]]}).json()
    assert [r["success"] for r in results] == [True]
    assert sender.sent[0][0] == "+1 555 123 4567"
    assert "10:00" in sender.sent[0][1]


def test_send_birthday_email(api, sender):
    client = create_client(api)
    sent = api.post(f"/notifications/birthdays/{client['id']}/send", json={"subject": "Cheers"})
    assert sent.json()["success"] is True
    assert sender.sent == [("rachel@example.com", "Cheers")]

    bounced = create_client(api, name="Ross Geller", email="ross@bounce.test")
    failed = api.post(f"/notifications/birthdays/{bounced['id']}/send", json={})
    assert failed.status_code == 502


def test_summary(api):
    create_client(api)
    summary = api.get("/summary/").json()
    assert summary["total_clients"] == 1
    assert summary["sessions_remaining"] == 10


def test_delete_session_with_wrong_client_is_rejected(api):
    owner = create_client(api)
    other = create_client(api, name="Monica Geller", email="monica@example.com")
    session = api.post("/sessions/", json={"client_id": owner["id"], "date": "2026-10-21", "time": "10:00"}).json()

    response = api.delete(f"/sessions/{session['id']}", params={"client_id": other["id"]})

    assert response.status_code == 400
    assert api.get(f"/clients/{owner['id']}").json()["sessions_left"] == 9
    assert api.get(f"/clients/{other['id']}").json()["sessions_left"] == 10
    assert len(api.get("/sessions/", params={"client_id": owner["id"]}).json()) == 1


def test_edit_purchase_reports_failed_balance_update(api, monkeypatch):
    client = create_client(api)
    added = api.post(
        f"/clients/{client['id']}/purchases",
        json={"package_name": "5x PK 30MIN", "package_sessions": 5, "amount": 400},
    ).json()

    def failing_delta(db, client_id, delta):
        raise PersistenceError("database unavailable")

    monkeypatch.setattr(crud, "apply_session_delta", failing_delta)
    response = api.put(f"/purchases/{added['purchase']['id']}", json={"package_sessions": 8})

    assert response.status_code == 200
    body = response.json()
    assert body["purchase"]["package_sessions"] == 8
    assert body["session_difference"] == 3
    assert body["client"] is None
    assert len(body["warnings"]) == 1
    assert api.get(f"/clients/{client['id']}").json()["total_sessions"] == 15


def test_delete_purchase_reports_failed_balance_update(api, monkeypatch):
    client = create_client(api)
    added = api.post(
        f"/clients/{client['id']}/purchases",
        json={"package_name": "5x PK 30MIN", "package_sessions": 5},
    ).json()

    def failing_delta(db, client_id, delta):
        raise PersistenceError("database unavailable")

    monkeypatch.setattr(crud, "apply_session_delta", failing_delta)
    body = api.delete(f"/purchases/{added['purchase']['id']}").json()

    assert body["success"] is True
    assert body["client"] is None
    assert len(body["warnings"]) == 1


def test_edit_client_with_null_package(api):
    client = create_client(api)

    response = api.put(f"/clients/{client['id']}", json={"package": None, "location": "Studio"})

    assert response.status_code == 200
    assert response.json()["package"] == "10x PK 60MIN"
    assert response.json()["location"] == "Studio"
