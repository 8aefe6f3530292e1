from __future__ import annotations

from typing import Callable, Optional, Protocol, Sequence, TypeVar

R = TypeVar("R")

Transition = Callable[[R], R]
Admission = Callable[[Sequence[R]], None]


class RequestStore(Protocol[R]):
    """Persisted collection of requests keyed by id.

    Lưu ý (DIP): workflow phụ thuộc vào interface này, không phụ thuộc DB cụ thể.
    """

    def get(self, request_id: str) -> Optional[R]:
        raise NotImplementedError

    def add(self, request: R) -> R:
        """Insert a new request; its id must not exist yet."""

        raise NotImplementedError

    def add_for_student(self, request: R, admit: Admission[R]) -> R:
        """Insert ``request`` after ``admit`` accepts the student's current requests.

        ``admit`` receives every stored request of ``request.student_id`` and
        raises a DomainError to refuse the insert. Admission and insert are
        serialized per student, so two concurrent callers never both pass a
        check the other's insert would have failed.
        """

        raise NotImplementedError

    def atomic_update(self, request_id: str, transition: Transition[R]) -> R:
        """Apply ``transition`` to the current request and commit the result.

        ``transition`` may raise a DomainError to reject the change; nothing is
        written then. The commit is a compare-and-swap on ``version``: if
        another writer committed after our read, ConflictError is raised and
        the caller retries against fresh state. Raises NotFoundError for an
        unknown id.
        """

        raise NotImplementedError

    def list_by_student(self, student_id: str) -> Sequence[R]:
        raise NotImplementedError

    def list_by_status(self, status) -> Sequence[R]:
        raise NotImplementedError
