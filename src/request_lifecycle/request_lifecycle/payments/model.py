from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from ..core.enums import PaymentMethod, PaymentStatus


@dataclass(frozen=True)
class PaymentInstallment:
    """Immutable ledger entry; created only by a successful settlement."""

    installment_id: str
    payment_request_id: str
    amount: Decimal
    payment_date: datetime
    external_ref: str
    method: PaymentMethod = PaymentMethod.MPESA
    paid_by: Optional[str] = None


@dataclass(frozen=True)
class PaymentRequestDraft:
    """Payload for creating a payment request, as submitted by a teacher."""

    student_id: Optional[str]
    requested_by: str
    amount: object
    purpose: Optional[str]
    due_date: Optional[date]
    allow_partial: bool = False
    minimum_amount: object = None


@dataclass(frozen=True)
class PaymentRequest:
    request_id: str
    student_id: str
    requested_by: str
    amount: Decimal
    purpose: str
    due_date: date
    allow_partial: bool
    minimum_amount: Optional[Decimal]
    created_at: datetime
    status: PaymentStatus = PaymentStatus.PENDING
    payment_history: Tuple[PaymentInstallment, ...] = ()
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    version: int = 0

    @property
    def paid_amount(self) -> Decimal:
        return sum((i.amount for i in self.payment_history), Decimal("0"))

    @property
    def remaining_amount(self) -> Decimal:
        return max(self.amount - self.paid_amount, Decimal("0"))

    @property
    def installment_count(self) -> int:
        return len(self.payment_history)

    def has_reference(self, external_ref: str) -> bool:
        return any(i.external_ref == external_ref for i in self.payment_history)

    def is_overdue(self, today: date) -> bool:
        """Derived flag only; overdue is never stored as a status."""
        return not self.status.is_terminal and today > self.due_date
