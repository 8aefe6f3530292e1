from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple

from ..core.enums import NotificationEventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    event_type: NotificationEventType
    request_id: str
    student_id: str
    status: str
    occurred_at: datetime
    recipients: Tuple[str, ...] = ()
    details: Dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    """Push/SMS/email delivery lives behind this; it is fire-and-forget."""

    def dispatch(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class LoggingNotificationDispatcher:
    """Default dispatcher: writes every event to the application log."""

    def dispatch(self, event: NotificationEvent) -> None:
        logger.info(
            "notify %s request=%s student=%s status=%s recipients=%s",
            event.event_type.value,
            event.request_id,
            event.student_id,
            event.status,
            ",".join(event.recipients) or "-",
        )


class RecordingNotificationDispatcher:
    """Keeps events in memory (tests, local debugging)."""

    def __init__(self) -> None:
        self.events: List[NotificationEvent] = []

    def dispatch(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def types(self) -> List[NotificationEventType]:
        return [e.event_type for e in self.events]


def safe_dispatch(dispatcher: Optional[NotificationDispatcher], event: NotificationEvent) -> None:
    """Deliver ``event``; a failing dispatcher never fails the transition."""
    if dispatcher is None:
        return
    try:
        dispatcher.dispatch(event)
    except Exception:
        logger.exception("Notification dispatch failed for %s (%s)", event.request_id, event.event_type.value)
