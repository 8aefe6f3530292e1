from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from ..core.enums import GuardianLinkStatus, PaymentMethod, PaymentStatus, RelationshipType
from ..core.exceptions import ConflictError, NotFoundError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, from_db_datetime, to_db_datetime
from ..directory.model import NewGuardian
from ..guardian_links.model import GuardianLinkRequest
from ..payments.model import PaymentInstallment, PaymentRequest
from .repository import Admission, Transition

R = TypeVar("R")


class MySQLVersionedStore(ABC, Generic[R]):
    """RequestStore over mysql-connector with a ``version`` column.

    The commit is ``UPDATE ... WHERE request_id=%s AND version=%s``; zero
    affected rows means another writer won and the transaction is rolled back.
    """

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    @abstractmethod
    def _select(self, cur, where: str, params: tuple) -> List[R]:
        raise NotImplementedError

    @abstractmethod
    def _insert(self, cur, request: R) -> None:
        raise NotImplementedError

    @abstractmethod
    def _write(self, cur, snapshot: R, updated: R) -> bool:
        raise NotImplementedError

    def get(self, request_id: str) -> Optional[R]:
        with db_cursor(self._conn_factory) as (_, cur):
            rows = self._select(cur, "request_id=%s", (str(request_id),))
            return rows[0] if rows else None

    def add(self, request: R) -> R:
        with db_cursor(self._conn_factory) as (_, cur):
            self._insert(cur, request)
        return request

    def add_for_student(self, request: R, admit: Admission[R]) -> R:
        student_id = str(request.student_id)
        with db_cursor(self._conn_factory) as (_, cur):
            # The student row lock is held until commit, so admissions queue per student.
            cur.execute("SELECT student_id FROM students WHERE student_id=%s FOR UPDATE", (student_id,))
            fetchall(cur)
            admit(self._select(cur, "student_id=%s", (student_id,)))
            self._insert(cur, request)
        return request

    def atomic_update(self, request_id: str, transition: Transition[R]) -> R:
        snapshot = self.get(request_id)
        if snapshot is None:
            raise NotFoundError("Request not found")

        updated = transition(snapshot)
        if updated is snapshot:
            return snapshot

        with db_cursor(self._conn_factory) as (_, cur):
            if not self._write(cur, snapshot, updated):
                raise ConflictError(f"Request {request_id} was modified concurrently")
        return replace(updated, version=snapshot.version + 1)

    def list_by_student(self, student_id: str) -> Sequence[R]:
        with db_cursor(self._conn_factory) as (_, cur):
            return self._select(cur, "student_id=%s", (str(student_id),))

    def list_by_status(self, status) -> Sequence[R]:
        with db_cursor(self._conn_factory) as (_, cur):
            return self._select(cur, "status=%s", (status.value,))


class MySQLGuardianLinkStore(MySQLVersionedStore[GuardianLinkRequest]):
    def _select(self, cur, where: str, params: tuple) -> List[GuardianLinkRequest]:
        cur.execute(
            f"""
            SELECT request_id, student_id, guardian_full_name, guardian_contact,
                   guardian_relationship, guardian_email, requested_by,
                   existing_guardian_ids, approved_by, status, created_at, expires_at,
                   decided_by, decided_at, rejection_reason, version
            FROM guardian_link_requests
            WHERE {where}
            ORDER BY created_at
            """,
            params,
        )
        return [self._from_row(r) for r in fetchall(cur)]

    @staticmethod
    def _from_row(r: Dict[str, Any]) -> GuardianLinkRequest:
        return GuardianLinkRequest(
            request_id=r["request_id"],
            student_id=r["student_id"],
            new_guardian=NewGuardian(
                full_name=r["guardian_full_name"],
                contact=r["guardian_contact"],
                relationship=RelationshipType(r["guardian_relationship"]),
                email=r.get("guardian_email"),
            ),
            requested_by=r["requested_by"],
            existing_guardian_ids=frozenset(json.loads(r["existing_guardian_ids"])),
            approved_by=tuple(json.loads(r["approved_by"])),
            status=GuardianLinkStatus(r["status"]),
            created_at=from_db_datetime(r["created_at"]),
            expires_at=from_db_datetime(r["expires_at"]),
            decided_by=r.get("decided_by"),
            decided_at=from_db_datetime(r.get("decided_at")),
            rejection_reason=r.get("rejection_reason"),
            version=int(r["version"]),
        )

    def _insert(self, cur, request: GuardianLinkRequest) -> None:
        g = request.new_guardian
        cur.execute(
            """
            INSERT INTO guardian_link_requests(
                request_id, student_id, guardian_full_name, guardian_contact,
                guardian_relationship, guardian_email, requested_by,
                existing_guardian_ids, approved_by, status, created_at, expires_at,
                decided_by, decided_at, version
            )
            VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
            """,
            (
                request.request_id,
                request.student_id,
                g.full_name,
                g.contact,
                g.relationship.value,
                g.email,
                request.requested_by,
                json.dumps(sorted(request.existing_guardian_ids)),
                json.dumps(list(request.approved_by)),
                request.status.value,
                to_db_datetime(request.created_at),
                to_db_datetime(request.expires_at),
                request.decided_by,
                to_db_datetime(request.decided_at),
                int(request.version),
            ),
        )

    def _write(self, cur, snapshot: GuardianLinkRequest, updated: GuardianLinkRequest) -> bool:
        cur.execute(
            """
            UPDATE guardian_link_requests
            SET approved_by=%s, status=%s, decided_by=%s, decided_at=%s,
                rejection_reason=%s, version=version+1
            WHERE request_id=%s AND version=%s
            """,
            (
                json.dumps(list(updated.approved_by)),
                updated.status.value,
                updated.decided_by,
                to_db_datetime(updated.decided_at),
                updated.rejection_reason,
                snapshot.request_id,
                int(snapshot.version),
            ),
        )
        return cur.rowcount == 1


class MySQLPaymentRequestStore(MySQLVersionedStore[PaymentRequest]):
    def _select(self, cur, where: str, params: tuple) -> List[PaymentRequest]:
        cur.execute(
            f"""
            SELECT request_id, student_id, requested_by, amount, purpose, due_date,
                   allow_partial, minimum_amount, status, created_at,
                   decided_by, decided_at, rejection_reason, version
            FROM payment_requests
            WHERE {where}
            ORDER BY created_at
            """,
            params,
        )
        rows = fetchall(cur)
        return [self._from_row(r, self._installments(cur, r["request_id"])) for r in rows]

    @staticmethod
    def _installments(cur, request_id: str) -> tuple:
        cur.execute(
            """
            SELECT installment_id, payment_request_id, amount, payment_date,
                   external_ref, method, paid_by
            FROM payment_installments
            WHERE payment_request_id=%s
            ORDER BY payment_date, installment_id
            """,
            (request_id,),
        )
        return tuple(
            PaymentInstallment(
                installment_id=r["installment_id"],
                payment_request_id=r["payment_request_id"],
                amount=Decimal(r["amount"]),
                payment_date=from_db_datetime(r["payment_date"]),
                external_ref=r["external_ref"],
                method=PaymentMethod(r["method"]),
                paid_by=r.get("paid_by"),
            )
            for r in fetchall(cur)
        )

    @staticmethod
    def _from_row(r: Dict[str, Any], history: tuple) -> PaymentRequest:
        minimum = r.get("minimum_amount")
        return PaymentRequest(
            request_id=r["request_id"],
            student_id=r["student_id"],
            requested_by=r["requested_by"],
            amount=Decimal(r["amount"]),
            purpose=r["purpose"],
            due_date=r["due_date"],
            allow_partial=bool(r["allow_partial"]),
            minimum_amount=Decimal(minimum) if minimum is not None else None,
            created_at=from_db_datetime(r["created_at"]),
            status=PaymentStatus(r["status"]),
            payment_history=history,
            decided_by=r.get("decided_by"),
            decided_at=from_db_datetime(r.get("decided_at")),
            rejection_reason=r.get("rejection_reason"),
            version=int(r["version"]),
        )

    def _insert(self, cur, request: PaymentRequest) -> None:
        cur.execute(
            """
            INSERT INTO payment_requests(
                request_id, student_id, requested_by, amount, purpose, due_date,
                allow_partial, minimum_amount, status, created_at, version
            )
            VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
            """,
            (
                request.request_id,
                request.student_id,
                request.requested_by,
                request.amount,
                request.purpose,
                request.due_date,
                int(request.allow_partial),
                request.minimum_amount,
                request.status.value,
                to_db_datetime(request.created_at),
                int(request.version),
            ),
        )

    def _write(self, cur, snapshot: PaymentRequest, updated: PaymentRequest) -> bool:
        cur.execute(
            """
            UPDATE payment_requests
            SET status=%s, decided_by=%s, decided_at=%s, rejection_reason=%s,
                version=version+1
            WHERE request_id=%s AND version=%s
            """,
            (
                updated.status.value,
                updated.decided_by,
                to_db_datetime(updated.decided_at),
                updated.rejection_reason,
                snapshot.request_id,
                int(snapshot.version),
            ),
        )
        if cur.rowcount != 1:
            return False

        # Ledger is append-only: only entries past the snapshot are new.
        for inst in updated.payment_history[len(snapshot.payment_history):]:
            cur.execute(
                """
                INSERT INTO payment_installments(
                    installment_id, payment_request_id, amount, payment_date,
                    external_ref, method, paid_by
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    inst.installment_id,
                    inst.payment_request_id,
                    inst.amount,
                    to_db_datetime(inst.payment_date),
                    inst.external_ref,
                    inst.method.value,
                    inst.paid_by,
                ),
            )
        return True
