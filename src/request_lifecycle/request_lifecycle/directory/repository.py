from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import NewGuardian, Student


class GuardianDirectory(Protocol):
    """Student/guardian registry owned outside this core."""

    def get_student(self, student_id: str) -> Optional[Student]:
        raise NotImplementedError

    def list_guardian_ids(self, student_id: str) -> Sequence[str]:
        raise NotImplementedError

    def link_guardian(self, student_id: str, new_guardian: NewGuardian) -> str:
        """Attach the guardian to the student, creating it if needed.

        Returns guardian_id.
        """

        raise NotImplementedError
