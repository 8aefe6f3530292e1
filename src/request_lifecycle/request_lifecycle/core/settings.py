from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Any

from .constants import (
    DEFAULT_CONFLICT_RETRIES,
    DEFAULT_GUARDIAN_LINK_TTL_HOURS,
    DEFAULT_MAX_GUARDIANS_PER_STUDENT,
    DEFAULT_MAX_PAYMENT_AMOUNT,
    DEFAULT_MINIMUM_AMOUNT_FLOOR,
    DEFAULT_MINIMUM_AMOUNT_RATIO,
)


@dataclass(frozen=True)
class WorkflowSettings:
    """Tunables injected into the workflows (per deployment, per test)."""

    max_guardians_per_student: int = DEFAULT_MAX_GUARDIANS_PER_STUDENT
    guardian_link_ttl: timedelta = timedelta(hours=DEFAULT_GUARDIAN_LINK_TTL_HOURS)
    minimum_amount_floor: Decimal = DEFAULT_MINIMUM_AMOUNT_FLOOR
    minimum_amount_ratio: Decimal = DEFAULT_MINIMUM_AMOUNT_RATIO
    max_payment_amount: Decimal = DEFAULT_MAX_PAYMENT_AMOUNT
    conflict_retries: int = DEFAULT_CONFLICT_RETRIES

    @classmethod
    def from_settings_module(cls, settings: Any) -> "WorkflowSettings":
        return cls(
            max_guardians_per_student=int(
                getattr(settings, "MAX_GUARDIANS_PER_STUDENT", DEFAULT_MAX_GUARDIANS_PER_STUDENT)
            ),
            guardian_link_ttl=timedelta(
                hours=float(getattr(settings, "GUARDIAN_LINK_TTL_HOURS", DEFAULT_GUARDIAN_LINK_TTL_HOURS))
            ),
            minimum_amount_floor=Decimal(str(getattr(settings, "MINIMUM_AMOUNT_FLOOR", DEFAULT_MINIMUM_AMOUNT_FLOOR))),
            minimum_amount_ratio=Decimal(str(getattr(settings, "MINIMUM_AMOUNT_RATIO", DEFAULT_MINIMUM_AMOUNT_RATIO))),
            max_payment_amount=Decimal(str(getattr(settings, "MAX_PAYMENT_AMOUNT", DEFAULT_MAX_PAYMENT_AMOUNT))),
            conflict_retries=int(getattr(settings, "CONFLICT_RETRIES", DEFAULT_CONFLICT_RETRIES)),
        )
