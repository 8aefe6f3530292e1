from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from src.request_lifecycle.request_lifecycle.core.enums import GuardianLinkStatus, PaymentMethod, PaymentStatus, RelationshipType
from src.request_lifecycle.request_lifecycle.core.exceptions import ConflictError, MaxGuardiansExceeded, NotFoundError
from src.request_lifecycle.request_lifecycle.directory.model import NewGuardian
from src.request_lifecycle.request_lifecycle.guardian_links.model import GuardianLinkRequest
from src.request_lifecycle.request_lifecycle.payments.model import PaymentInstallment
from src.request_lifecycle.request_lifecycle.store.mysql_request_store import (
    MySQLGuardianLinkStore,
    MySQLPaymentRequestStore,
)

PAID_AT = datetime(2026, 3, 2, 9, 0)


class FakeCursor:
    def __init__(self, db):
        self.db = db
        self.rowcount = -1
        self._rows = []

    def execute(self, sql, params=()):
        sql = " ".join(sql.split())
        self.db.executed.append((sql, params))
        self._rows = []
        if sql.startswith("SELECT"):
            self._rows = self.db.rows_for(sql)
        elif sql.startswith("UPDATE"):
            self.rowcount = self.db.update_rowcount
        else:
            self.rowcount = 1

    def fetchall(self):
        return list(self._rows)

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def close(self):
        pass


class FakeConnection:
    def __init__(self, db):
        self.db = db

    def cursor(self, dictionary=False):
        return FakeCursor(self.db)

    def commit(self):
        self.db.commits += 1

    def rollback(self):
        self.db.rollbacks += 1

    def close(self):
        pass


class FakeDatabase:
    """Stands in for DatabaseConnection; rows are served by table name."""

    def __init__(self, *, update_rowcount=1):
        self.update_rowcount = update_rowcount
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.tables = {}

    def connect(self):
        return FakeConnection(self)

    def rows_for(self, sql):
        table = sql.split(" FROM ", 1)[1].split()[0]
        return self.tables.get(table, [])

    def statements(self, prefix):
        return [(sql, params) for sql, params in self.executed if sql.startswith(prefix)]


def _payment_row(version=2):
    return {
        "request_id": "p1",
        "student_id": "s1",
        "requested_by": "teacher-1",
        "amount": Decimal("5000.00"),
        "purpose": "Term 2 school trip to Naivasha",
        "due_date": date(2026, 3, 31),
        "allow_partial": 1,
        "minimum_amount": Decimal("1000.00"),
        "status": "partially_paid",
        "created_at": datetime(2026, 3, 1, 8, 0),
        "decided_by": None,
        "decided_at": None,
        "rejection_reason": None,
        "version": version,
    }


def _installment_row():
    return {
        "installment_id": "i1",
        "payment_request_id": "p1",
        "amount": Decimal("1000.00"),
        "payment_date": PAID_AT,
        "external_ref": "MPESA-001",
        "method": "mpesa",
        "paid_by": None,
    }


def _payment_db(**kwargs):
    db = FakeDatabase(**kwargs)
    db.tables["payment_requests"] = [_payment_row()]
    db.tables["payment_installments"] = [_installment_row()]
    return db


def _pay(amount, ref):
    def transition(current):
        installment = PaymentInstallment(
            installment_id=f"i-{ref}",
            payment_request_id=current.request_id,
            amount=Decimal(amount),
            payment_date=datetime(2026, 3, 3, 10, 0, tzinfo=timezone.utc),
            external_ref=ref,
            method=PaymentMethod.BANK_TRANSFER,
        )
        return replace(current, payment_history=current.payment_history + (installment,))

    return transition


def test_rows_are_read_back_with_their_ledger():
    store = MySQLPaymentRequestStore(_payment_db())

    request = store.get("p1")

    assert request.status == PaymentStatus.PARTIALLY_PAID
    assert request.paid_amount == Decimal("1000.00")
    assert request.created_at.tzinfo is timezone.utc
    assert request.payment_history[0].payment_date == PAID_AT.replace(tzinfo=timezone.utc)
    assert request.version == 2


def test_update_appends_only_the_new_installments():
    db = _payment_db()
    store = MySQLPaymentRequestStore(db)

    updated = store.atomic_update("p1", _pay("1500", "BANK-7"))

    assert updated.version == 3
    assert updated.paid_amount == Decimal("2500.00")
    (update_sql, update_params), = db.statements("UPDATE payment_requests")
    assert "WHERE request_id=%s AND version=%s" in update_sql
    assert update_params[-2:] == ("p1", 2)
    inserts = db.statements("INSERT INTO payment_installments")
    assert len(inserts) == 1
    assert inserts[0][1][0] == "i-BANK-7"
    assert inserts[0][1][5] == "bank_transfer"
    assert db.rollbacks == 0


def test_stale_version_rolls_back_without_touching_the_ledger():
    db = _payment_db(update_rowcount=0)
    store = MySQLPaymentRequestStore(db)

    with pytest.raises(ConflictError):
        store.atomic_update("p1", _pay("1500", "BANK-7"))

    assert db.statements("INSERT INTO payment_installments") == []
    assert db.rollbacks == 1


def test_unchanged_transition_writes_nothing():
    db = _payment_db()
    store = MySQLPaymentRequestStore(db)

    same = store.atomic_update("p1", lambda r: r)

    assert same.version == 2
    assert db.statements("UPDATE") == []


def test_missing_request_is_not_found():
    with pytest.raises(NotFoundError):
        MySQLPaymentRequestStore(FakeDatabase()).atomic_update("p1", lambda r: r)


def _link(request_id="l2"):
    return GuardianLinkRequest(
        request_id=request_id,
        student_id="s1",
        new_guardian=NewGuardian(full_name="Wanjiru Kamau", contact="+254712345678", relationship=RelationshipType.MOTHER),
        requested_by="teacher-1",
        existing_guardian_ids=frozenset({"g1", "g2"}),
        created_at=datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc),
        expires_at=datetime(2026, 3, 3, 8, 0, tzinfo=timezone.utc),
    )


def _link_row():
    return {
        "request_id": "l1",
        "student_id": "s1",
        "guardian_full_name": "Otieno Baraka",
        "guardian_contact": "+254722000111",
        "guardian_relationship": "father",
        "guardian_email": None,
        "requested_by": "teacher-1",
        "existing_guardian_ids": '["g1", "g2"]',
        "approved_by": '["g1"]',
        "status": "pending",
        "created_at": datetime(2026, 3, 2, 7, 0),
        "expires_at": datetime(2026, 3, 3, 7, 0),
        "decided_by": None,
        "decided_at": None,
        "rejection_reason": None,
        "version": 1,
    }


def test_admission_locks_the_student_before_reading_links():
    db = FakeDatabase()
    db.tables["guardian_link_requests"] = [_link_row()]
    seen = []

    MySQLGuardianLinkStore(db).add_for_student(_link(), seen.extend)

    sqls = [sql for sql, _ in db.executed]
    assert sqls[0] == "SELECT student_id FROM students WHERE student_id=%s FOR UPDATE"
    assert sqls[-1].startswith("INSERT INTO guardian_link_requests")
    assert [r.request_id for r in seen] == ["l1"]
    assert seen[0].approved_by == ("g1",)
    assert seen[0].status == GuardianLinkStatus.PENDING
    assert db.commits == 1


def test_refused_admission_inserts_nothing():
    db = FakeDatabase()

    def refuse(current_links):
        raise MaxGuardiansExceeded("A student can have at most 5 guardians")

    with pytest.raises(MaxGuardiansExceeded):
        MySQLGuardianLinkStore(db).add_for_student(_link(), refuse)

    assert db.statements("INSERT") == []
    assert db.rollbacks == 1
    assert db.commits == 0
