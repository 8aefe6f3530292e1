from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Generic, Optional, TypeVar, Union

from ..core.exceptions import ValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Invalid:
    reason: str
    field: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False

    def to_error(self) -> ValidationError:
        errors = {self.field: self.reason} if self.field else {}
        return ValidationError(self.reason, errors)


Outcome = Union[Valid[T], Invalid]


@dataclass(frozen=True)
class ValidationResult:
    """Field -> message map; the payload is valid iff it is empty."""

    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_if_invalid(self, message: str = "Validation failed") -> None:
        if self.errors:
            raise ValidationError(message, self.errors)
