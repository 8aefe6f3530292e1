from __future__ import annotations

import logging
from typing import Callable, TypeVar

from ..core.exceptions import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_on_conflict(operation: Callable[[], T], *, attempts: int, label: str) -> T:
    """Run ``operation``, re-running it on ConflictError up to ``attempts`` times.

    Each retry re-reads fresh state because ``operation`` calls the store again.
    """
    attempts = max(int(attempts), 1)
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConflictError:
            if attempt == attempts:
                logger.warning("%s: giving up after %d conflicting attempts", label, attempts)
                raise
            logger.debug("%s: conflict on attempt %d, retrying", label, attempt)
    raise AssertionError("unreachable")
