from __future__ import annotations

import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from ..core.enums import RelationshipType
from .model import Guardian, GuardianRelation, NewGuardian, Student

logger = logging.getLogger(__name__)


class InMemoryGuardianDirectory:
    def __init__(self) -> None:
        self._students: Dict[str, Student] = {}
        self._guardians: Dict[str, Guardian] = {}
        self._relations: Dict[str, List[GuardianRelation]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_seed_file(cls, path: Union[str, Path]) -> "InMemoryGuardianDirectory":
        """Directory pre-filled from a JSON file of students and their guardians.

        Format: ``{"students": [{"student_id", "display_name", "guardians": [...]}]}``
        with each guardian as ``{"guardian_id", "display_name", "contact"}``.
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        directory = cls()
        for s in data.get("students", []):
            guardians = [
                Guardian(guardian_id=g["guardian_id"], display_name=g["display_name"], contact=g["contact"])
                for g in s.get("guardians", [])
            ]
            directory.add_student(Student(student_id=s["student_id"], display_name=s["display_name"]), guardians)
        logger.info("Directory seeded from %s (%d students)", path, len(directory._students))
        return directory

    def add_student(self, student: Student, guardians: Sequence[Guardian] = ()) -> None:
        with self._lock:
            self._students[student.student_id] = student
            relations = self._relations.setdefault(student.student_id, [])
            for idx, g in enumerate(guardians):
                self._guardians[g.guardian_id] = g
                relations.append(
                    GuardianRelation(
                        student_id=student.student_id,
                        guardian_id=g.guardian_id,
                        relationship=RelationshipType.GUARDIAN,
                        is_primary=idx == 0,
                    )
                )

    def get_student(self, student_id: str) -> Optional[Student]:
        return self._students.get(str(student_id))

    def list_guardian_ids(self, student_id: str) -> Sequence[str]:
        return [r.guardian_id for r in self._relations.get(str(student_id), [])]

    def relations_for(self, student_id: str) -> Sequence[GuardianRelation]:
        return list(self._relations.get(str(student_id), []))

    def link_guardian(self, student_id: str, new_guardian: NewGuardian) -> str:
        with self._lock:
            guardian = next((g for g in self._guardians.values() if g.contact == new_guardian.contact), None)
            if guardian is None:
                guardian = Guardian(
                    guardian_id=uuid.uuid4().hex,
                    display_name=new_guardian.full_name,
                    contact=new_guardian.contact,
                )
                self._guardians[guardian.guardian_id] = guardian

            relations = self._relations.setdefault(str(student_id), [])
            if not any(r.guardian_id == guardian.guardian_id for r in relations):
                relations.append(
                    GuardianRelation(
                        student_id=str(student_id),
                        guardian_id=guardian.guardian_id,
                        relationship=new_guardian.relationship,
                        is_primary=not relations,
                    )
                )
            return guardian.guardian_id
