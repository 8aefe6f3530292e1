from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List

from ..core.constants import MONEY_PLACES
from .model import PaymentRequest


@dataclass(frozen=True)
class AmountSuggestion:
    label: str
    amount: Decimal
    description: str


def suggest_payment_amounts(request: PaymentRequest) -> List[AmountSuggestion]:
    """Quick-pay shortcuts derived from the remaining balance.

    Presentation only. The half-balance shortcut is clamped up to the
    minimum installment so it is never an amount record_payment would refuse.
    A balance that has fallen below the minimum gets no shortcuts at all.
    """
    remaining = request.remaining_amount
    if remaining <= 0 or request.status.is_terminal:
        return []
    if request.minimum_amount is not None and remaining < request.minimum_amount:
        return []

    suggestions = [AmountSuggestion("Full Amount", remaining, "Pay the full balance")]
    if not request.allow_partial:
        return suggestions

    minimum = request.minimum_amount or Decimal("0")
    half = (remaining / 2).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)
    half = max(half, minimum)
    if 0 < half < remaining:
        suggestions.append(AmountSuggestion("50% Payment", half, "Pay half of the balance"))

    if 0 < minimum < remaining and minimum != half:
        suggestions.append(AmountSuggestion("Minimum", minimum, "Pay the minimum installment"))
    return suggestions
