from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.request_lifecycle.request_lifecycle.common.retry import retry_on_conflict
from src.request_lifecycle.request_lifecycle.core.enums import PaymentStatus
from src.request_lifecycle.request_lifecycle.core.exceptions import ConflictError, NotFoundError
from src.request_lifecycle.request_lifecycle.payments.model import PaymentRequest
from src.request_lifecycle.request_lifecycle.store.memory_store import InMemoryRequestStore

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def _request(request_id="p1", student_id="s1", created_at=T0, status=PaymentStatus.PENDING):
    return PaymentRequest(
        request_id=request_id,
        student_id=student_id,
        requested_by="t1",
        amount=Decimal("5000"),
        purpose="Term 2 school trip",
        due_date=date(2026, 3, 31),
        allow_partial=False,
        minimum_amount=None,
        created_at=created_at,
        status=status,
    )


def test_add_and_get():
    store = InMemoryRequestStore()
    store.add(_request())

    assert store.get("p1").version == 0
    assert store.get("nope") is None
    with pytest.raises(ConflictError):
        store.add(_request())


def test_atomic_update_bumps_version():
    store = InMemoryRequestStore()
    store.add(_request())

    updated = store.atomic_update("p1", lambda r: replace(r, status=PaymentStatus.APPROVED))

    assert updated.version == 1
    assert store.get("p1").status == PaymentStatus.APPROVED


def test_returning_the_snapshot_writes_nothing():
    store = InMemoryRequestStore()
    store.add(_request())

    same = store.atomic_update("p1", lambda r: r)

    assert same.version == 0


def test_stale_writer_gets_conflict():
    store = InMemoryRequestStore()
    store.add(_request())

    def sneaky(current):
        # another writer commits while this transition is being computed
        store.atomic_update("p1", lambda r: replace(r, status=PaymentStatus.APPROVED))
        return replace(current, status=PaymentStatus.REJECTED)

    with pytest.raises(ConflictError):
        store.atomic_update("p1", sneaky)
    assert store.get("p1").status == PaymentStatus.APPROVED
    assert store.get("p1").version == 1


def test_missing_id_is_not_found():
    with pytest.raises(NotFoundError):
        InMemoryRequestStore().atomic_update("p1", lambda r: r)


def test_listing_by_student_and_status_is_ordered_by_creation():
    store = InMemoryRequestStore()
    store.add(_request("p2", created_at=T0 + timedelta(hours=1)))
    store.add(_request("p1"))
    store.add(_request("p3", student_id="s2", status=PaymentStatus.APPROVED))

    assert [r.request_id for r in store.list_by_student("s1")] == ["p1", "p2"]
    assert [r.request_id for r in store.list_by_status(PaymentStatus.APPROVED)] == ["p3"]


def test_retry_on_conflict_rereads_until_success():
    calls = []

    def operation():
        calls.append(1)
        if len(calls) < 3:
            raise ConflictError("stale")
        return "done"

    assert retry_on_conflict(operation, attempts=3, label="test") == "done"
    assert len(calls) == 3


def test_retry_on_conflict_gives_up():
    def operation():
        raise ConflictError("stale")

    with pytest.raises(ConflictError):
        retry_on_conflict(operation, attempts=2, label="test")
