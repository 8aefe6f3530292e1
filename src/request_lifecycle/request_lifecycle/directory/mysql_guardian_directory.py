from __future__ import annotations

import uuid
from typing import Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import NewGuardian, Student


class MySQLGuardianDirectory:
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_student(self, student_id: str) -> Optional[Student]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT student_id, display_name FROM students WHERE student_id=%s",
                (str(student_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return Student(student_id=r["student_id"], display_name=r["display_name"])

    def list_guardian_ids(self, student_id: str) -> Sequence[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT guardian_id
                FROM student_guardians
                WHERE student_id=%s
                ORDER BY is_primary DESC, linked_at
                """,
                (str(student_id),),
            )
            return [r["guardian_id"] for r in fetchall(cur)]

    def link_guardian(self, student_id: str, new_guardian: NewGuardian) -> str:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT guardian_id FROM guardians WHERE contact=%s", (new_guardian.contact,))
            existing = fetchone(cur)
            if existing:
                guardian_id = existing["guardian_id"]
            else:
                guardian_id = uuid.uuid4().hex
                cur.execute(
                    """
                    INSERT INTO guardians(guardian_id, display_name, contact, email)
                    VALUES(%s,%s,%s,%s)
                    """,
                    (guardian_id, new_guardian.full_name, new_guardian.contact, new_guardian.email),
                )

            cur.execute("SELECT COUNT(*) AS n FROM student_guardians WHERE student_id=%s", (str(student_id),))
            is_primary = int(fetchone(cur)["n"]) == 0
            cur.execute(
                """
                INSERT IGNORE INTO student_guardians(student_id, guardian_id, relationship, is_primary)
                VALUES(%s,%s,%s,%s)
                """,
                (str(student_id), guardian_id, new_guardian.relationship.value, int(is_primary)),
            )
            return guardian_id
