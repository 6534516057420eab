from datetime import timedelta

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from medqueue.application.ports.waitlist_repo import Bucket, NewWaitlistEntry
from medqueue.application.services.lease import utcnow
from medqueue.config import settings
from medqueue.database import get_session
from medqueue.infrastructure.persistence.sqlalchemy.repositories import SqlWaitlistRepository
from medqueue.main import app
from medqueue.models import TimeSlot

SECRET = "router-test-secret-with-enough-length"
DAY = (utcnow() + timedelta(days=3)).date().isoformat()


def token(user_id, role=None):
    claims = {"sub": user_id}
    if role:
        claims["role"] = role
    return jwt.encode(claims, SECRET, algorithm=settings.ALGORITHM)


def auth(user_id, role=None):
    return {"Authorization": f"Bearer {token(user_id, role)}"}


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setattr(settings, "SECRET_KEY", SECRET)

    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()


def join(client, patient, priority="normal", time="10:00"):
    return client.post(
        "/waitlist/join",
        json={"doctor_id": "dr-x", "date": DAY, "time": time, "symptoms": "persistent cough", "priority": priority},
        headers=auth(patient),
    )


def open_slot(engine, max_patients=1, booked=0):
    with Session(engine) as session:
        session.add(
            TimeSlot(
                doctor_id="dr-x",
                slot_date=utcnow().date() + timedelta(days=3),
                start_time="10:00",
                end_time="10:30",
                max_patients=max_patients,
                booked_patients=booked,
            )
        )
        session.commit()


def cascade(client):
    return client.post("/waitlist/cascade", json={"doctor_id": "dr-x", "date": DAY, "time": "10:00"}, headers=auth("dr-x"))


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_join_returns_position(client):
    first = join(client, "p1")
    second = join(client, "p2")

    assert first.status_code == 201
    body = second.json()
    assert body["success"] is True
    assert body["waitlist"]["position_in_queue"] == 2
    assert body["waitlist"]["status"] == "waiting"


def test_duplicate_join_uses_error_envelope(client):
    join(client, "p1")
    resp = join(client, "p1")

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "data": None, "error": "You are already in the waitlist for this slot"}


def test_join_rejects_bad_input(client):
    resp = client.post(
        "/waitlist/join",
        json={"doctor_id": "dr-x", "date": DAY, "time": "25:00", "symptoms": "cough"},
        headers=auth("p1"),
    )
    assert resp.status_code == 422


def test_missing_token_is_unauthenticated(client):
    resp = client.get("/waitlist/user")
    assert resp.status_code == 401


def test_invalid_token(client):
    resp = client.get("/waitlist/user", headers={"Authorization": "Bearer nonsense"})
    assert resp.status_code == 401


def test_cascade_offers_urgent_patient_first(client):
    join(client, "p1")
    join(client, "p2", priority="urgent")

    resp = cascade(client)
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["notified"]["patient_id"] == "p2"
    assert body["notified"]["status"] == "notified"


def test_cascade_on_empty_queue(client):
    body = cascade(client).json()
    assert body["success"] is False
    assert body["queue_empty"] is True
    assert body["message"] == "No one in waitlist"


def test_cascade_by_other_doctor_is_forbidden(client):
    resp = client.post(
        "/waitlist/cascade", json={"doctor_id": "dr-x", "date": DAY, "time": "10:00"}, headers=auth("dr-y")
    )
    assert resp.status_code == 403


def test_convert_books_when_capacity_remains(client, engine):
    open_slot(engine, max_patients=2, booked=1)
    entry = join(client, "p1").json()["waitlist"]
    cascade(client)

    resp = client.post(f"/waitlist/convert/{entry['id']}", headers=auth("p1"))
    body = resp.json()
    assert resp.status_code == 200
    assert body["waitlist"]["status"] == "booked"
    assert body["waitlist"]["appointment_id"] == body["appointment_id"]


def test_convert_without_capacity_is_retryable(client):
    entry = join(client, "p1").json()["waitlist"]
    cascade(client)

    resp = client.post(f"/waitlist/convert/{entry['id']}", headers=auth("p1"))
    assert resp.status_code == 409
    assert resp.json()["retryable"] is True

    mine = client.get("/waitlist/user", headers=auth("p1")).json()
    assert mine["waitlist"][0]["status"] == "expired"


def test_convert_foreign_entry(client):
    entry = join(client, "p1").json()["waitlist"]
    cascade(client)
    resp = client.post(f"/waitlist/convert/{entry['id']}", headers=auth("p2"))
    assert resp.status_code == 403


def test_withdraw_compacts_queue(client):
    first = join(client, "p1").json()["waitlist"]
    join(client, "p2")
    join(client, "p3")

    resp = client.delete(f"/waitlist/{first['id']}", headers=auth("p1"))
    assert resp.json() == {"success": True, "message": "Successfully removed from waitlist"}

    queue = client.get("/waitlist/doctor", headers=auth("dr-x")).json()
    assert [(e["patient_id"], e["position_in_queue"]) for e in queue["waitlist"]] == [("p2", 1), ("p3", 2)]
    assert queue["pagination"] == {"total": 2, "page": 1, "limit": 20, "total_pages": 1}


def test_withdraw_unknown_entry(client):
    resp = client.delete("/waitlist/does-not-exist", headers=auth("p1"))
    assert resp.status_code == 404


def test_admin_listing_requires_admin(client):
    join(client, "p1")
    assert client.get("/waitlist/admin/all", headers=auth("p1")).status_code == 403

    body = client.get("/waitlist/admin/all", headers=auth("root", role="admin")).json()
    assert body["statistics"] == {"total": 1, "statuses": [{"status": "waiting", "count": 1}]}


def test_user_listing_rejects_unknown_status(client):
    resp = client.get("/waitlist/user?status=pending", headers=auth("p1"))
    assert resp.status_code == 400


def test_sweep_is_admin_only(client):
    assert client.post("/waitlist/sweep", headers=auth("p1")).status_code == 403
    body = client.post("/waitlist/sweep", headers=auth("root", role="admin")).json()
    assert body["scanned"] == 0


def test_sweep_expires_lapsed_offer(client, engine):
    now = utcnow()
    bucket = Bucket("dr-x", utcnow().date() + timedelta(days=3), "10:00")
    with Session(engine) as session:
        repo = SqlWaitlistRepository(session)
        lapsed = repo.add(
            NewWaitlistEntry(
                patient_id="p1",
                bucket=bucket,
                symptoms="persistent cough",
                appointment_type="regular",
                priority="urgent",
                expiry_date=now + timedelta(hours=20),
                created_at=now - timedelta(hours=4),
            )
        )
        repo.mark_notified(lapsed.id, now - timedelta(hours=3), now - timedelta(hours=1))
    join(client, "p2")

    body = client.post("/waitlist/sweep", headers=auth("root", role="admin")).json()
    assert (body["scanned"], body["expired"], body["offered"], body["failed"]) == (1, 1, 1, 0)

    queue = client.get("/waitlist/doctor", headers=auth("dr-x")).json()["waitlist"]
    assert {e["patient_id"]: e["status"] for e in queue} == {"p1": "expired", "p2": "notified"}
    assert client.post("/waitlist/sweep", headers=auth("root", role="admin")).json()["scanned"] == 0
