"""Centralized validation rules for amounts, installments and payloads.

Every check returns ``Valid``/``Invalid`` (or a ``ValidationResult`` for
multi-field payloads); expected domain violations never raise here. The
workflows decide when an ``Invalid`` becomes a ``ValidationError``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from ..core.constants import (
    DEFAULT_MAX_PAYMENT_AMOUNT,
    DEFAULT_MINIMUM_AMOUNT_FLOOR,
    DEFAULT_MINIMUM_AMOUNT_RATIO,
    MIN_GUARDIAN_NAME_LENGTH,
    MIN_PURPOSE_LENGTH,
    MONEY_PLACES,
)
from ..core.enums import RelationshipType
from ..core.settings import WorkflowSettings
from ..directory.model import NewGuardian
from ..payments.model import PaymentRequest, PaymentRequestDraft
from .result import Invalid, Outcome, Valid, ValidationResult

_PHONE_SEPARATORS = re.compile(r"[\s\-()]")
_KENYAN_MOBILE = re.compile(r"^\+254[17]\d{8}$")


def to_decimal(raw: object) -> Optional[Decimal]:
    """Parse a numeric string/number into Decimal, or None when not numeric."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float)):
        value = Decimal(str(raw))
    elif isinstance(raw, str):
        text = raw.strip().replace(",", "")
        if not text:
            return None
        try:
            value = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not value.is_finite():
        return None
    return value


def normalize_phone(raw: Optional[str]) -> Optional[str]:
    """Normalize ``07..``/``254..``/``+254..`` forms to ``+254XXXXXXXXX``."""
    if not raw:
        return None
    cleaned = _PHONE_SEPARATORS.sub("", raw)
    if cleaned.startswith("0"):
        cleaned = "+254" + cleaned[1:]
    elif cleaned.startswith("254"):
        cleaned = "+" + cleaned
    if not _KENYAN_MOBILE.match(cleaned):
        return None
    return cleaned


def calculate_payment_percentage(paid: object, total: object) -> int:
    paid_d = to_decimal(paid)
    total_d = to_decimal(total)
    if paid_d is None or total_d is None or total_d == 0:
        return 0
    pct = (paid_d / total_d * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(min(max(pct, Decimal("0")), Decimal("100")))


@dataclass(frozen=True)
class ValidationEngine:
    absolute_floor: Decimal = DEFAULT_MINIMUM_AMOUNT_FLOOR
    minimum_ratio: Decimal = DEFAULT_MINIMUM_AMOUNT_RATIO
    max_amount: Decimal = DEFAULT_MAX_PAYMENT_AMOUNT

    calculate_payment_percentage = staticmethod(calculate_payment_percentage)

    @classmethod
    def from_settings(cls, settings: WorkflowSettings) -> "ValidationEngine":
        return cls(
            absolute_floor=settings.minimum_amount_floor,
            minimum_ratio=settings.minimum_amount_ratio,
            max_amount=settings.max_payment_amount,
        )

    def validate_amount(self, raw: object, *, field: str = "amount") -> Outcome[Decimal]:
        value = to_decimal(raw)
        if value is None:
            return Invalid("Please enter a valid amount", field)
        if value <= 0:
            return Invalid("Amount must be greater than zero", field)
        if value != value.quantize(MONEY_PLACES):
            return Invalid("Amount cannot have more than 2 decimal places", field)
        if value > self.max_amount:
            return Invalid(f"Amount cannot exceed {self.max_amount:,}", field)
        return Valid(value.quantize(MONEY_PLACES))

    def validate_minimum_amount(self, minimum: object, total: object) -> Outcome[Decimal]:
        field = "minimum_amount"
        if minimum is None or (isinstance(minimum, str) and not minimum.strip()):
            return Invalid("Minimum payment amount is required", field)
        checked = self.validate_amount(minimum, field=field)
        if isinstance(checked, Invalid):
            return Invalid("Please enter a valid minimum amount", field)
        total_d = to_decimal(total)
        if total_d is None or total_d <= 0:
            return Invalid("Invalid total amount", field)

        min_d = checked.value
        if min_d > total_d:
            return Invalid("Minimum payment cannot exceed total amount", field)
        if min_d < self.absolute_floor:
            return Invalid(f"Minimum payment must be at least {self.absolute_floor:,}", field)
        ratio_floor = (total_d * self.minimum_ratio).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)
        if min_d < ratio_floor:
            pct = int(self.minimum_ratio * 100)
            return Invalid(f"Minimum payment must be at least {pct}% of the total ({ratio_floor:,})", field)
        return Valid(min_d)

    def validate_partial_payment(self, request: PaymentRequest, proposed: object) -> Outcome[Decimal]:
        checked = self.validate_amount(proposed)
        if isinstance(checked, Invalid):
            return checked

        amount = checked.value
        remaining = request.remaining_amount
        if not request.allow_partial and amount != remaining:
            return Invalid(f"Full payment of {remaining:,} is required", "amount")
        if amount > remaining:
            return Invalid(f"Amount cannot exceed balance of {remaining:,}", "amount")
        minimum = request.minimum_amount
        if minimum is not None and amount < minimum:
            return Invalid(f"Minimum payment is {minimum:,}", "amount")
        return Valid(amount)

    def validate_request_creation(self, draft: PaymentRequestDraft, *, today: date) -> ValidationResult:
        errors: dict[str, str] = {}

        if not draft.student_id or not str(draft.student_id).strip():
            errors["student_id"] = "Please select a student"

        amount = self.validate_amount(draft.amount)
        if isinstance(amount, Invalid):
            errors["amount"] = amount.reason

        purpose = (draft.purpose or "").strip()
        if not purpose:
            errors["purpose"] = "Please enter a purpose"
        elif len(purpose) < MIN_PURPOSE_LENGTH:
            errors["purpose"] = f"Purpose must be at least {MIN_PURPOSE_LENGTH} characters"

        if draft.due_date is None:
            errors["due_date"] = "Please select a due date"
        elif draft.due_date < today:
            errors["due_date"] = "Due date cannot be in the past"

        if draft.allow_partial:
            minimum = self.validate_minimum_amount(draft.minimum_amount, draft.amount)
            if isinstance(minimum, Invalid):
                errors["minimum_amount"] = minimum.reason

        return ValidationResult(errors)

    def validate_new_guardian(self, new_guardian: NewGuardian) -> ValidationResult:
        errors: dict[str, str] = {}

        name = (new_guardian.full_name or "").strip()
        if not name:
            errors["full_name"] = "Name is required"
        elif len(name) < MIN_GUARDIAN_NAME_LENGTH:
            errors["full_name"] = f"Name must be at least {MIN_GUARDIAN_NAME_LENGTH} characters"

        if not (new_guardian.contact or "").strip():
            errors["contact"] = "Phone number is required"
        elif normalize_phone(new_guardian.contact) is None:
            errors["contact"] = "Phone number must be in format +254XXXXXXXXX (Safaricom/Airtel only)"

        if not isinstance(new_guardian.relationship, RelationshipType):
            errors["relationship"] = "Please select a valid relationship"

        return ValidationResult(errors)
