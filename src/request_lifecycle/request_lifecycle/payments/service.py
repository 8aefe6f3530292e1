from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from ..common.datetime_utils import Clock, utc_now
from ..common.retry import retry_on_conflict
from ..common.validators import require_non_empty
from ..core.enums import NotificationEventType, PaymentMethod, PaymentStatus
from ..core.exceptions import AlreadyTerminalError, NotFoundError
from ..core.settings import WorkflowSettings
from ..notifications.dispatcher import NotificationDispatcher, NotificationEvent, safe_dispatch
from ..store.repository import RequestStore
from ..validation.engine import ValidationEngine
from ..validation.result import Invalid
from .model import PaymentInstallment, PaymentRequest, PaymentRequestDraft
from .suggestions import AmountSuggestion, suggest_payment_amounts

logger = logging.getLogger(__name__)


def derive_status(request: PaymentRequest) -> PaymentStatus:
    """Status implied by the ledger; only called on non-terminal requests."""
    paid = request.paid_amount
    if paid >= request.amount:
        return PaymentStatus.PAID
    if paid > 0:
        return PaymentStatus.PARTIALLY_PAID
    return request.status


class PaymentSettlementWorkflow:
    def __init__(
        self,
        requests: RequestStore[PaymentRequest],
        *,
        validator: Optional[ValidationEngine] = None,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[WorkflowSettings] = None,
        clock: Clock = utc_now,
    ):
        self._requests = requests
        self._settings = settings or WorkflowSettings()
        self._validator = validator or ValidationEngine.from_settings(self._settings)
        self._notifier = notifier
        self._clock = clock

    @property
    def validator(self) -> ValidationEngine:
        return self._validator

    # -------- Commands --------
    def create(self, draft: PaymentRequestDraft) -> PaymentRequest:
        requested_by = require_non_empty(draft.requested_by, "requested_by")
        now = self._clock()
        self._validator.validate_request_creation(draft, today=now.date()).raise_if_invalid(
            "Invalid payment request"
        )

        minimum = None
        if draft.allow_partial:
            minimum = self._validator.validate_minimum_amount(draft.minimum_amount, draft.amount).value

        request = PaymentRequest(
            request_id=uuid.uuid4().hex,
            student_id=str(draft.student_id).strip(),
            requested_by=requested_by,
            amount=self._validator.validate_amount(draft.amount).value,
            purpose=draft.purpose.strip(),
            due_date=draft.due_date,
            allow_partial=bool(draft.allow_partial),
            minimum_amount=minimum,
            created_at=now,
        )
        request = self._requests.add(request)
        logger.info("Payment request %s created for student %s: %s", request.request_id, request.student_id, request.amount)
        self._notify(request, NotificationEventType.PAYMENT_REQUEST_CREATED, details={"amount": str(request.amount)})
        return request

    def approve(self, *, request_id: str, actor_id: str) -> PaymentRequest:
        return self._decide(request_id, actor_id, PaymentStatus.APPROVED, None)

    def reject(self, *, request_id: str, actor_id: str, reason: str = "") -> PaymentRequest:
        return self._decide(request_id, actor_id, PaymentStatus.REJECTED, (reason or "").strip() or None)

    def record_payment(
        self,
        *,
        request_id: str,
        amount: object,
        external_ref: str,
        method: PaymentMethod = PaymentMethod.MPESA,
        paid_by: Optional[str] = None,
    ) -> PaymentRequest:
        external_ref = require_non_empty(external_ref, "external_ref")
        outcome: Dict[str, Decimal] = {}

        def transition(current: PaymentRequest) -> PaymentRequest:
            outcome.clear()
            if current.status.is_terminal:
                if current.has_reference(external_ref):
                    return current
                raise AlreadyTerminalError(f"Payment request is already {current.status.value}")
            if current.has_reference(external_ref):
                return current

            checked = self._validator.validate_partial_payment(current, amount)
            if isinstance(checked, Invalid):
                raise checked.to_error()

            installment = PaymentInstallment(
                installment_id=uuid.uuid4().hex,
                payment_request_id=current.request_id,
                amount=checked.value,
                payment_date=self._clock(),
                external_ref=external_ref,
                method=method,
                paid_by=paid_by,
            )
            updated = replace(current, payment_history=current.payment_history + (installment,))
            outcome["amount"] = checked.value
            return replace(updated, status=derive_status(updated))

        result = retry_on_conflict(
            lambda: self._requests.atomic_update(str(request_id), transition),
            attempts=self._settings.conflict_retries,
            label="record payment",
        )

        if "amount" in outcome:
            logger.info(
                "Payment %s recorded on %s: %s (remaining %s)",
                external_ref,
                result.request_id,
                outcome["amount"],
                result.remaining_amount,
            )
            details = {
                "amount": str(outcome["amount"]),
                "external_ref": external_ref,
                "remaining_amount": str(result.remaining_amount),
                "percentage": self._validator.calculate_payment_percentage(result.paid_amount, result.amount),
            }
            self._notify(result, NotificationEventType.PAYMENT_RECORDED, details=details)
            if result.status == PaymentStatus.PAID:
                self._notify(result, NotificationEventType.PAYMENT_REQUEST_PAID)
        return result

    # -------- Queries --------
    def get(self, request_id: str) -> PaymentRequest:
        request = self._requests.get(str(request_id))
        if request is None:
            raise NotFoundError("Payment request not found")
        return request

    def list_for_student(self, student_id: str) -> Sequence[PaymentRequest]:
        return self._requests.list_by_student(str(student_id))

    def list_overdue(self, today: date) -> List[PaymentRequest]:
        """Open requests past their due date, earliest due first."""
        open_statuses = [s for s in PaymentStatus if not s.is_terminal]
        overdue = [r for s in open_statuses for r in self._requests.list_by_status(s) if r.is_overdue(today)]
        overdue.sort(key=lambda r: (r.due_date, r.created_at))
        return overdue

    def percentage_paid(self, request: PaymentRequest) -> int:
        return self._validator.calculate_payment_percentage(request.paid_amount, request.amount)

    def suggest_amounts(self, request: PaymentRequest) -> List[AmountSuggestion]:
        return suggest_payment_amounts(request)

    # -------- Internals --------
    def _decide(
        self,
        request_id: str,
        actor_id: str,
        target: PaymentStatus,
        reason: Optional[str],
    ) -> PaymentRequest:
        actor_id = require_non_empty(actor_id, "actor_id")
        changed: Dict[str, bool] = {}

        def transition(current: PaymentRequest) -> PaymentRequest:
            changed.clear()
            if current.status == target:
                return current
            if current.status != PaymentStatus.PENDING:
                raise AlreadyTerminalError(f"Payment request is already {current.status.value}")
            changed["status"] = True
            return replace(
                current,
                status=target,
                decided_by=actor_id,
                decided_at=self._clock(),
                rejection_reason=reason,
            )

        result = retry_on_conflict(
            lambda: self._requests.atomic_update(str(request_id), transition),
            attempts=self._settings.conflict_retries,
            label=f"{target.value} payment request",
        )
        if changed:
            logger.info("Payment request %s %s by %s", result.request_id, target.value, actor_id)
            event_type = (
                NotificationEventType.PAYMENT_REQUEST_APPROVED
                if target == PaymentStatus.APPROVED
                else NotificationEventType.PAYMENT_REQUEST_REJECTED
            )
            self._notify(result, event_type, details={"reason": reason} if reason else None)
        return result

    def _notify(
        self,
        request: PaymentRequest,
        event_type: NotificationEventType,
        *,
        details: Optional[dict] = None,
    ) -> None:
        safe_dispatch(
            self._notifier,
            NotificationEvent(
                event_type=event_type,
                request_id=request.request_id,
                student_id=request.student_id,
                status=request.status.value,
                occurred_at=self._clock(),
                recipients=(request.requested_by,),
                details=details or {},
            ),
        )
