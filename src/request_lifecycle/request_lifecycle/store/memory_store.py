from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, Generic, Optional, Sequence, TypeVar

from ..core.exceptions import ConflictError, NotFoundError
from .repository import Admission, Transition

R = TypeVar("R")


class InMemoryRequestStore(Generic[R]):
    """Dict-backed store with optimistic concurrency.

    The transition runs on an unlocked snapshot; only the version check and
    swap happen under the per-id lock, so different ids never contend and a
    stale writer gets ConflictError instead of overwriting.
    """

    def __init__(self) -> None:
        self._items: Dict[str, R] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, request_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(request_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[request_id] = lock
            return lock

    def get(self, request_id: str) -> Optional[R]:
        return self._items.get(str(request_id))

    def add(self, request: R) -> R:
        request_id = str(request.request_id)
        with self._lock_for(request_id):
            if request_id in self._items:
                raise ConflictError(f"Request {request_id} already exists")
            self._items[request_id] = request
        return request

    def add_for_student(self, request: R, admit: Admission[R]) -> R:
        with self._lock_for(f"student:{request.student_id}"):
            admit(self.list_by_student(request.student_id))
            return self.add(request)

    def atomic_update(self, request_id: str, transition: Transition[R]) -> R:
        request_id = str(request_id)
        snapshot = self._items.get(request_id)
        if snapshot is None:
            raise NotFoundError("Request not found")

        updated = transition(snapshot)
        if updated is snapshot:
            return snapshot

        with self._lock_for(request_id):
            current = self._items[request_id]
            if current.version != snapshot.version:
                raise ConflictError(f"Request {request_id} was modified concurrently")
            committed = replace(updated, version=snapshot.version + 1)
            self._items[request_id] = committed
        return committed

    def list_by_student(self, student_id: str) -> Sequence[R]:
        items = [r for r in list(self._items.values()) if r.student_id == str(student_id)]
        items.sort(key=lambda r: r.created_at)
        return items

    def list_by_status(self, status) -> Sequence[R]:
        items = [r for r in list(self._items.values()) if r.status == status]
        items.sort(key=lambda r: r.created_at)
        return items
