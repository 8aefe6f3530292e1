from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Optional, Tuple

from ..core.enums import GuardianLinkStatus
from ..directory.model import NewGuardian


@dataclass(frozen=True)
class GuardianLinkRequest:
    """Proposal to attach ``new_guardian`` to a student.

    ``existing_guardian_ids`` is the snapshot taken at creation; every id in it
    must approve. ``approved_by`` keeps approval order for audit but is
    compared as a set.
    """

    request_id: str
    student_id: str
    new_guardian: NewGuardian
    requested_by: str
    existing_guardian_ids: FrozenSet[str]
    created_at: datetime
    expires_at: datetime
    status: GuardianLinkStatus = GuardianLinkStatus.PENDING
    approved_by: Tuple[str, ...] = ()
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    version: int = 0

    @property
    def is_unanimous(self) -> bool:
        return set(self.approved_by) == set(self.existing_guardian_ids)

    @property
    def awaiting(self) -> FrozenSet[str]:
        """Guardians who still have to approve."""
        return frozenset(self.existing_guardian_ids - set(self.approved_by))

    def is_past_deadline(self, now: datetime) -> bool:
        return now > self.expires_at
