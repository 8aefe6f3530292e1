from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..common.datetime_utils import Clock, utc_now
from ..common.retry import retry_on_conflict
from ..common.validators import require_non_empty
from ..core.enums import GuardianLinkStatus, NotificationEventType
from ..core.exceptions import (
    AlreadyTerminalError,
    AuthorizationError,
    ExpiredError,
    MaxGuardiansExceeded,
    NotFoundError,
    ValidationError,
)
from ..core.settings import WorkflowSettings
from ..directory.model import NewGuardian
from ..directory.repository import GuardianDirectory
from ..notifications.dispatcher import NotificationDispatcher, NotificationEvent, safe_dispatch
from ..store.repository import RequestStore
from ..validation.engine import ValidationEngine, normalize_phone
from .model import GuardianLinkRequest

logger = logging.getLogger(__name__)


class GuardianLinkWorkflow:
    """Unanimous-consent workflow for attaching a new guardian to a student.

    Expiry is lazy: any access to a pending request past ``expires_at`` flips
    it to ``expired`` through the store before anything else happens.
    The guardian limit is checked when a link is admitted (serialized per
    student by the store) and again when the last approval lands.
    """

    def __init__(
        self,
        links: RequestStore[GuardianLinkRequest],
        directory: GuardianDirectory,
        *,
        validator: Optional[ValidationEngine] = None,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[WorkflowSettings] = None,
        clock: Clock = utc_now,
    ):
        self._links = links
        self._directory = directory
        self._settings = settings or WorkflowSettings()
        self._validator = validator or ValidationEngine.from_settings(self._settings)
        self._notifier = notifier
        self._clock = clock

    # -------- Commands --------
    def create(self, *, student_id: str, new_guardian: NewGuardian, requested_by: str) -> GuardianLinkRequest:
        requested_by = require_non_empty(requested_by, "requested_by")
        self._validator.validate_new_guardian(new_guardian).raise_if_invalid("Invalid guardian details")

        student_id = str(student_id or "").strip()
        if not student_id or not self._directory.get_student(student_id):
            raise ValidationError("Student not found", {"student_id": "Please select a student"})

        now = self._clock()
        existing = frozenset(self._directory.list_guardian_ids(student_id))

        def admit(current_links: Sequence[GuardianLinkRequest]) -> None:
            # Unexpired pending links hold a slot until they are decided.
            pending = [r for r in current_links if r.status == GuardianLinkStatus.PENDING and not r.is_past_deadline(now)]
            self._check_capacity(len(existing) + len(pending))

        request = GuardianLinkRequest(
            request_id=uuid.uuid4().hex,
            student_id=student_id,
            new_guardian=replace(
                new_guardian,
                full_name=new_guardian.full_name.strip(),
                contact=normalize_phone(new_guardian.contact),
            ),
            requested_by=requested_by,
            existing_guardian_ids=existing,
            created_at=now,
            expires_at=now + self._settings.guardian_link_ttl,
        )
        if not existing:
            # Nobody to ask: unanimity over an empty set holds immediately.
            request = replace(request, status=GuardianLinkStatus.APPROVED, decided_by=requested_by, decided_at=now)

        request = self._links.add_for_student(request, admit)
        logger.info("Guardian link %s created for student %s (%d approvals needed)", request.request_id, student_id, len(existing))
        self._notify(request, NotificationEventType.GUARDIAN_LINK_CREATED, recipients=tuple(sorted(existing)))
        if request.status == GuardianLinkStatus.APPROVED:
            self._complete_link(request)
        return request

    def approve(self, *, request_id: str, guardian_id: str) -> GuardianLinkRequest:
        guardian_id = require_non_empty(guardian_id, "guardian_id")
        outcome: Dict[str, bool] = {}

        def transition(current: GuardianLinkRequest) -> GuardianLinkRequest:
            outcome.clear()
            now = self._clock()
            if self._is_due(current, now):
                outcome["expired"] = True
                return self._expired(current, now)
            self._guard(current, guardian_id)

            if guardian_id in current.approved_by and current.status in {
                GuardianLinkStatus.PENDING,
                GuardianLinkStatus.APPROVED,
            }:
                return current
            if current.status != GuardianLinkStatus.PENDING:
                raise AlreadyTerminalError(f"Request is already {current.status.value}")

            updated = replace(current, approved_by=current.approved_by + (guardian_id,))
            if updated.is_unanimous:
                self._check_capacity(len(self._directory.list_guardian_ids(current.student_id)))
                outcome["approved"] = True
                return replace(updated, status=GuardianLinkStatus.APPROVED, decided_by=guardian_id, decided_at=now)
            outcome["recorded"] = True
            return updated

        result = self._update(request_id, transition, "approve guardian link")

        if outcome.get("expired"):
            self._notify(result, NotificationEventType.GUARDIAN_LINK_EXPIRED, recipients=(result.requested_by,))
            raise ExpiredError("Guardian link request has expired")
        if outcome.get("approved"):
            logger.info("Guardian link %s approved by all %d guardians", result.request_id, len(result.existing_guardian_ids))
            self._complete_link(result)
        elif outcome.get("recorded"):
            self._notify(
                result,
                NotificationEventType.GUARDIAN_LINK_APPROVAL_RECORDED,
                recipients=(result.requested_by,),
                details={"guardian_id": guardian_id, "awaiting": sorted(result.awaiting)},
            )
        return result

    def reject(self, *, request_id: str, guardian_id: str, reason: str = "") -> GuardianLinkRequest:
        guardian_id = require_non_empty(guardian_id, "guardian_id")
        reason = (reason or "").strip() or None
        outcome: Dict[str, bool] = {}

        def transition(current: GuardianLinkRequest) -> GuardianLinkRequest:
            outcome.clear()
            now = self._clock()
            if self._is_due(current, now):
                outcome["expired"] = True
                return self._expired(current, now)
            self._guard(current, guardian_id)

            if current.status == GuardianLinkStatus.REJECTED and current.decided_by == guardian_id:
                return current
            if current.status != GuardianLinkStatus.PENDING:
                raise AlreadyTerminalError(f"Request is already {current.status.value}")

            outcome["rejected"] = True
            return replace(
                current,
                status=GuardianLinkStatus.REJECTED,
                decided_by=guardian_id,
                decided_at=now,
                rejection_reason=reason,
            )

        result = self._update(request_id, transition, "reject guardian link")

        if outcome.get("expired"):
            self._notify(result, NotificationEventType.GUARDIAN_LINK_EXPIRED, recipients=(result.requested_by,))
            raise ExpiredError("Guardian link request has expired")
        if outcome.get("rejected"):
            logger.info("Guardian link %s rejected by %s", result.request_id, guardian_id)
            self._notify(
                result,
                NotificationEventType.GUARDIAN_LINK_REJECTED,
                recipients=(result.requested_by, *sorted(result.existing_guardian_ids - {guardian_id})),
                details={"reason": reason} if reason else {},
            )
        return result

    # -------- Queries --------
    def get(self, request_id: str) -> GuardianLinkRequest:
        current = self._links.get(str(request_id))
        if current is None:
            raise NotFoundError("Guardian link request not found")
        return self._refresh(current)

    def list_for_student(self, student_id: str) -> List[GuardianLinkRequest]:
        return [self._refresh(r) for r in self._links.list_by_student(str(student_id))]

    def list_pending_for_guardian(self, guardian_id: str) -> List[GuardianLinkRequest]:
        guardian_id = str(guardian_id)
        out: List[GuardianLinkRequest] = []
        for r in self._links.list_by_status(GuardianLinkStatus.PENDING):
            if guardian_id not in r.existing_guardian_ids:
                continue
            r = self._refresh(r)
            if r.status == GuardianLinkStatus.PENDING and guardian_id in r.awaiting:
                out.append(r)
        return out

    @staticmethod
    def approval_progress(request: GuardianLinkRequest) -> Tuple[int, int]:
        return len(set(request.approved_by)), len(request.existing_guardian_ids)

    # -------- Internals --------
    def _check_capacity(self, taken: int) -> None:
        limit = self._settings.max_guardians_per_student
        if taken >= limit:
            message = f"A student can have at most {limit} guardians"
            raise MaxGuardiansExceeded(message, {"student_id": message})

    @staticmethod
    def _is_due(request: GuardianLinkRequest, now: datetime) -> bool:
        return request.status == GuardianLinkStatus.PENDING and request.is_past_deadline(now)

    @staticmethod
    def _expired(request: GuardianLinkRequest, now: datetime) -> GuardianLinkRequest:
        return replace(request, status=GuardianLinkStatus.EXPIRED, decided_at=now)

    @staticmethod
    def _guard(request: GuardianLinkRequest, guardian_id: str) -> None:
        if request.status == GuardianLinkStatus.EXPIRED:
            raise ExpiredError("Guardian link request has expired")
        if guardian_id not in request.existing_guardian_ids:
            raise AuthorizationError("Only existing guardians of this student can act on this request")

    def _update(self, request_id: str, transition, label: str) -> GuardianLinkRequest:
        return retry_on_conflict(
            lambda: self._links.atomic_update(str(request_id), transition),
            attempts=self._settings.conflict_retries,
            label=label,
        )

    def _refresh(self, request: GuardianLinkRequest) -> GuardianLinkRequest:
        if not self._is_due(request, self._clock()):
            return request

        flipped: Dict[str, bool] = {}

        def transition(current: GuardianLinkRequest) -> GuardianLinkRequest:
            flipped.clear()
            now = self._clock()
            if not self._is_due(current, now):
                return current
            flipped["expired"] = True
            return self._expired(current, now)

        result = self._update(request.request_id, transition, "expire guardian link")
        if flipped:
            logger.info("Guardian link %s expired with %d/%d approvals", result.request_id, *self.approval_progress(result))
            self._notify(result, NotificationEventType.GUARDIAN_LINK_EXPIRED, recipients=(result.requested_by,))
        return result

    def _complete_link(self, request: GuardianLinkRequest) -> None:
        try:
            guardian_id = self._directory.link_guardian(request.student_id, request.new_guardian)
        except Exception:
            # The request stays approved; the registry reconciles approved links.
            logger.exception("Linking guardian for approved request %s failed", request.request_id)
            guardian_id = None
        self._notify(
            request,
            NotificationEventType.GUARDIAN_LINK_APPROVED,
            recipients=(request.requested_by, *sorted(request.existing_guardian_ids)),
            details={"guardian_id": guardian_id} if guardian_id else {},
        )

    def _notify(
        self,
        request: GuardianLinkRequest,
        event_type: NotificationEventType,
        *,
        recipients: Sequence[str] = (),
        details: Optional[dict] = None,
    ) -> None:
        safe_dispatch(
            self._notifier,
            NotificationEvent(
                event_type=event_type,
                request_id=request.request_id,
                student_id=request.student_id,
                status=request.status.value,
                occurred_at=self._clock(),
                recipients=tuple(recipients),
                details=details or {},
            ),
        )
