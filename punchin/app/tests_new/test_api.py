import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from fakes import make_booking, make_settings, make_studio, seed
from punchin.api import app as api_module
from punchin.app.domain.schedule import OperatingSchedule
from punchin.app.services.shared_services import booking_to_document, utc_now


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setattr(api_module, "JWT_SECRET", "test-secret")
    monkeypatch.setattr(api_module, "TRIGGER_TOKEN", "trigger-secret")
    api_module.app.dependency_overrides[api_module.get_store] = lambda: store
    with TestClient(api_module.get_app()) as c:
        yield c
    api_module.app.dependency_overrides.clear()


def _auth(user_id="artist-1"):
    return {"Authorization": f"Bearer {api_module.issue_jwt(user_id)}"}


def _payload(start=None, minutes=120, **extra):
    start = start or utc_now().replace(microsecond=0) + timedelta(hours=2)
    body = {"studio_id": "studio-1", "engineer_id": "eng-1", "start": start.isoformat(), "duration_minutes": minutes}
    body.update(extra)
    return body


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_quote_endpoint(client, store):
    asyncio.run(seed(store))
    r = client.post("/api/quote", json=_payload(minutes=90), headers=_auth())
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["is_instant"] is True
    assert body["instant_decision"] == "instant"
    assert body["room_id"] == "room-a"
    assert body["pricing"] == {"hourly_rate": "60.00", "total": "90.00", "currency": "USD"}
    assert store.bookings == {}


def test_quote_rejections_use_error_codes(client, store):
    start = utc_now().replace(microsecond=0) + timedelta(hours=2)
    asyncio.run(seed(store, studio=make_studio(schedule=OperatingSchedule(blackout_dates=[start.date()]))))

    r = client.post("/api/quote", json=_payload(start=start), headers=_auth())
    assert r.status_code == 200
    assert r.json()["ok"] is False
    assert r.json()["error"] == "outside_operating_hours"

    r = client.post("/api/quote", json=_payload(minutes=0), headers=_auth())
    assert r.json()["error"] == "invalid_duration"

    r = client.post("/api/quote", json=_payload(studio_id="missing"), headers=_auth())
    assert r.json()["error"] == "studio_not_found"

    r = client.post("/api/quote", json=_payload(room_id="room-z"), headers=_auth())
    assert r.json()["error"] == "no_room_available"


def test_submit_and_read_booking(client, store):
    asyncio.run(seed(store, settings=make_settings(premium=False)))
    r = client.post("/api/bookings", json=_payload(notes="vocals"), headers=_auth())
    body = r.json()
    assert body["ok"] is True
    booking = body["booking"]
    assert booking["status"] == "pending"
    assert booking["artist_id"] == "artist-1"
    assert booking["notes"] == "vocals"
    assert booking["requires_engineer_approval"] is True

    r = client.get(f"/api/bookings/{booking['id']}", headers=_auth("eng-1"))
    assert r.json()["booking"]["id"] == booking["id"]

    r = client.get(f"/api/bookings/{booking['id']}", headers=_auth("stranger"))
    assert r.status_code == 403

    r = client.get("/api/bookings/unknown", headers=_auth())
    assert r.json()["error"] == "booking_not_found"

    listed = client.get("/api/bookings", params={"role": "studio"}, headers=_auth("owner-1")).json()
    assert [b["id"] for b in listed] == [booking["id"]]
    assert client.get("/api/bookings", params={"role": "admin"}, headers=_auth()).status_code == 422


def test_status_changes_through_api(client, store):
    asyncio.run(seed(store, settings=make_settings(premium=False)))
    booking_id = client.post("/api/bookings", json=_payload(), headers=_auth()).json()["booking"]["id"]

    r = client.post(f"/api/bookings/{booking_id}/status", json={"status": "confirmed"}, headers=_auth())
    assert r.json()["error"] == "forbidden"

    client.post(f"/api/bookings/{booking_id}/status", json={"status": "confirmed"}, headers=_auth("eng-1"))
    r = client.post(f"/api/bookings/{booking_id}/status", json={"status": "confirmed"}, headers=_auth("owner-1"))
    assert r.json()["booking"]["status"] == "confirmed"

    r = client.post(f"/api/bookings/{booking_id}/status", json={"status": "pending"}, headers=_auth("owner-1"))
    assert r.json()["error"] == "invalid_transition"


def test_reschedule_through_api(client, store):
    asyncio.run(seed(store))
    booking_id = client.post("/api/bookings", json=_payload(), headers=_auth()).json()["booking"]["id"]
    new_start = utc_now().replace(microsecond=0) + timedelta(days=1)

    r = client.post(
        f"/api/bookings/{booking_id}/reschedule",
        json={"start": new_start.isoformat(), "duration_minutes": 60},
        headers=_auth(),
    )
    booking = r.json()["booking"]
    assert booking["status"] == "pending"
    assert booking["duration_minutes"] == 60
    assert booking["confirmed_start"] is None


@pytest.mark.parametrize(
    "headers, detail",
    [
        ({}, "missing_authorization"),
        ({"Authorization": "Token abc"}, "invalid_authorization_header"),
        ({"Authorization": "Bearer not-a-jwt"}, "invalid_token"),
    ],
)
def test_auth_failures(client, headers, detail):
    r = client.post("/api/quote", json=_payload(), headers=headers)
    assert r.status_code == 401
    assert r.json()["detail"] == detail


def test_expired_token(client):
    token = api_module.issue_jwt("artist-1", ttl_seconds=-10)
    r = client.get("/api/alerts", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["detail"] == "token_expired"


def test_auth_not_configured(client, monkeypatch):
    monkeypatch.setattr(api_module, "JWT_SECRET", "")
    r = client.get("/api/alerts", headers={"Authorization": "Bearer whatever"})
    assert r.status_code == 503


def test_trigger_mirrors_booking_write(client, store):
    asyncio.run(store.upsert_studio(make_studio()))
    document = booking_to_document(make_booking())

    r = client.post(
        "/triggers/bookings/bk-1",
        json={"before": None, "after": document},
        headers={"X-Trigger-Token": "trigger-secret"},
    )
    assert r.json() == {"ok": True, "action": "upsert"}
    assert set(store.holds_for("bk-1")) == {"studio-1", "eng-1"}

    alerts = client.get("/api/alerts", headers=_auth("owner-1")).json()
    assert [a["title"] for a in alerts] == ["New booking request"]

    r = client.post(
        "/triggers/bookings/bk-1",
        json={"before": document, "after": None},
        headers={"X-Trigger-Token": "trigger-secret"},
    )
    assert r.json()["action"] == "remove"
    assert store.availability == {}


def test_trigger_rejects_bad_input(client, monkeypatch):
    r = client.post("/triggers/bookings/bk-1", json={"after": None}, headers={"X-Trigger-Token": "wrong"})
    assert r.status_code == 401

    r = client.post(
        "/triggers/bookings/bk-1",
        json={"after": {"status": "bogus"}},
        headers={"X-Trigger-Token": "trigger-secret"},
    )
    assert r.status_code == 422
    assert r.json()["detail"] == "invalid_booking_document"

    monkeypatch.setattr(api_module, "TRIGGER_TOKEN", "")
    r = client.post("/triggers/bookings/bk-1", json={}, headers={"X-Trigger-Token": "trigger-secret"})
    assert r.status_code == 503


def test_booking_deleted_mid_request_is_not_found(client, store, monkeypatch):
    asyncio.run(seed(store))
    booking_id = client.post("/api/bookings", json=_payload(), headers=_auth()).json()["booking"]["id"]
    load_booking = store.load_booking

    async def load_then_vanish(requested_id):
        booking = await load_booking(requested_id)
        store.bookings.pop(requested_id, None)
        return booking

    monkeypatch.setattr(store, "load_booking", load_then_vanish)
    r = client.post(f"/api/bookings/{booking_id}/status", json={"status": "cancelled"}, headers=_auth())
    assert r.status_code == 200
    assert r.json()["error"] == "booking_not_found"
