from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.request_lifecycle.request_lifecycle.container import build_container
from src.request_lifecycle.request_lifecycle.directory.memory_directory import InMemoryGuardianDirectory
from src.request_lifecycle.request_lifecycle.directory.model import Guardian, Student
from src.request_lifecycle.request_lifecycle.main import create_app
from src.request_lifecycle.request_lifecycle.notifications.dispatcher import RecordingNotificationDispatcher


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc))


@pytest.fixture()
def client(monkeypatch, clock):
    monkeypatch.setenv("APP_ENV", "testing")
    directory = InMemoryGuardianDirectory()
    directory.add_student(
        Student(student_id="s1", display_name="Amani Otieno"),
        [Guardian("g1", "Achieng Otieno", "+254711000001"), Guardian("g2", "Brian Otieno", "+254711000002")],
    )
    container = build_container(
        store_backend="memory",
        directory=directory,
        notifier=RecordingNotificationDispatcher(),
        clock=clock,
    )
    app = create_app(container)
    return app.test_client()


def _create_link(client):
    resp = client.post(
        "/guardian-links",
        json={
            "student_id": "s1",
            "full_name": "Wanjiru Kamau",
            "contact": "0712345678",
            "relationship": "mother",
            "requested_by": "teacher-1",
        },
    )
    assert resp.status_code == 201
    return resp.get_json()


def _create_payment(client, **overrides):
    payload = {
        "student_id": "s1",
        "requested_by": "teacher-1",
        "amount": "5000",
        "purpose": "Term 2 school trip to Naivasha",
        "due_date": "2026-03-31",
        "allow_partial": True,
        "minimum_amount": "1000",
    }
    payload.update(overrides)
    return client.post("/payment-requests", json=payload)


def test_guardian_link_flow(client):
    link = _create_link(client)
    rid = link["request_id"]
    assert link["status"] == "pending"
    assert link["approvals"] == {"given": 0, "required": 2}

    pending = client.get("/guardians/g1/pending-links").get_json()["items"]
    assert [p["request_id"] for p in pending] == [rid]

    resp = client.post(f"/guardian-links/{rid}/approve", json={"guardian_id": "g1"})
    assert resp.status_code == 200
    assert resp.get_json()["awaiting"] == ["g2"]

    resp = client.post(f"/guardian-links/{rid}/approve", json={"guardian_id": "g2"})
    assert resp.get_json()["status"] == "approved"

    resp = client.post(f"/guardian-links/{rid}/reject", json={"guardian_id": "g1"})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_terminal"


def test_guardian_link_errors_map_to_statuses(client, clock):
    link = _create_link(client)
    rid = link["request_id"]

    resp = client.post(f"/guardian-links/{rid}/approve", json={"guardian_id": "stranger"})
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "forbidden"

    resp = client.post(f"/guardian-links/{rid}/approve", json={})
    assert resp.status_code == 400
    assert "guardian_id" in resp.get_json()["errors"]

    assert client.get("/guardian-links/nope").status_code == 404

    clock.now += timedelta(hours=25)
    resp = client.post(f"/guardian-links/{rid}/approve", json={"guardian_id": "g1"})
    assert resp.status_code == 410
    assert client.get(f"/guardian-links/{rid}").get_json()["status"] == "expired"


def test_guardian_link_validation_errors(client):
    resp = client.post(
        "/guardian-links",
        json={"student_id": "s1", "full_name": "W", "contact": "12345", "relationship": "aunt", "requested_by": "t1"},
    )
    assert resp.status_code == 400
    assert resp.get_json()["errors"]["relationship"]

    resp = client.post(
        "/guardian-links",
        json={"student_id": "s1", "full_name": "Wanjiru", "contact": "12345", "requested_by": "t1"},
    )
    body = resp.get_json()
    assert resp.status_code == 400
    assert body["error"] == "validation_failed"
    assert set(body["errors"]) == {"contact"}


def test_payment_request_flow(client):
    resp = _create_payment(client)
    assert resp.status_code == 201
    rid = resp.get_json()["request_id"]

    assert client.post(f"/payment-requests/{rid}/approve", json={"actor_id": "admin-1"}).status_code == 200

    suggestions = client.get(f"/payment-requests/{rid}/suggestions").get_json()["items"]
    assert [s["label"] for s in suggestions] == ["Full Amount", "50% Payment", "Minimum"]

    resp = client.post(f"/payment-requests/{rid}/payments", json={"amount": "1000", "external_ref": "MPESA-1"})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["status"] == "partially_paid"
    assert body["remaining_amount"] == "4000.00"
    assert body["percentage_paid"] == 20
    assert body["installment_count"] == 1

    resp = client.post(f"/payment-requests/{rid}/payments", json={"amount": "500", "external_ref": "MPESA-2"})
    assert resp.status_code == 400
    assert "amount" in resp.get_json()["errors"]

    resp = client.post(
        f"/payment-requests/{rid}/payments",
        json={"amount": "4000", "external_ref": "BANK-7", "method": "bank_transfer"},
    )
    assert resp.get_json()["status"] == "paid"
    assert resp.get_json()["payment_history"][-1]["method"] == "bank_transfer"

    resp = client.post(f"/payment-requests/{rid}/payments", json={"amount": "1", "external_ref": "MPESA-3"})
    assert resp.status_code == 409

    items = client.get("/students/s1/payment-requests").get_json()["items"]
    assert [i["request_id"] for i in items] == [rid]
    assert items[0]["is_overdue"] is False


def test_payment_request_validation(client):
    resp = _create_payment(client, amount="abc", due_date="31/03/2026")
    assert resp.status_code == 400
    assert "due_date" in resp.get_json()["errors"]

    resp = _create_payment(client, amount="abc")
    assert resp.status_code == 400
    assert "amount" in resp.get_json()["errors"]

    rid = _create_payment(client).get_json()["request_id"]
    resp = client.post(f"/payment-requests/{rid}/payments", json={"amount": "1000", "external_ref": "R", "method": "bitcoin"})
    assert resp.status_code == 400

    assert client.get("/payment-requests/nope").status_code == 404


def test_default_app_uses_the_seeded_directory(monkeypatch):
    monkeypatch.setenv("APP_ENV", "testing")
    monkeypatch.delenv("STORE_BACKEND", raising=False)
    client = create_app().test_client()

    resp = client.post(
        "/guardian-links",
        json={
            "student_id": "stu-001",
            "full_name": "Wanjiru Kamau",
            "contact": "0712345678",
            "relationship": "mother",
            "requested_by": "teacher-1",
        },
    )

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["status"] == "pending"
    assert body["approvals"] == {"given": 0, "required": 2}
    pending = client.get("/guardians/gdn-001/pending-links").get_json()["items"]
    assert [p["request_id"] for p in pending] == [body["request_id"]]


def test_overdue_listing(client, clock):
    rid = _create_payment(client, due_date="2026-03-10").get_json()["request_id"]
    assert client.get("/payment-requests/overdue").get_json() == {"items": [], "count": 0}

    clock.now += timedelta(days=10)
    body = client.get("/payment-requests/overdue").get_json()

    assert body["count"] == 1
    assert body["items"][0]["request_id"] == rid
    assert body["items"][0]["is_overdue"] is True
