from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import RelationshipType


@dataclass(frozen=True)
class Student:
    """Identity reference only; owned by the school registry."""

    student_id: str
    display_name: str


@dataclass(frozen=True)
class Guardian:
    guardian_id: str
    display_name: str
    contact: str


@dataclass(frozen=True)
class GuardianRelation:
    student_id: str
    guardian_id: str
    relationship: RelationshipType
    is_primary: bool = False


@dataclass(frozen=True)
class NewGuardian:
    """Guardian proposed by a teacher, not yet linked to the student."""

    full_name: str
    contact: str
    relationship: RelationshipType
    email: Optional[str] = None
