"""
Retryable persister.

Saves a reconciled draft through the store with retries on transient
infrastructure errors, then reloads the canonical record so callers only
ever see store-assigned identifiers.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol

from app.services.timeline_schema import TimelineDraft
from app.utils.observability import EventSink, LoggingEventSink

logger = logging.getLogger(__name__)

TRANSIENT_ERROR_PATTERNS = (
    re.compile(r"connection refused|econnrefused", re.IGNORECASE),
    re.compile(r"timeout|timed out", re.IGNORECASE),
    re.compile(r"connection", re.IGNORECASE),
)


def is_transient_error(error: BaseException) -> bool:
    """Whether ``error`` looks like a temporary infrastructure failure."""
    message = str(error)
    return any(pattern.search(message) for pattern in TRANSIENT_ERROR_PATTERNS)


class TimelineStoreProtocol(Protocol):
    def upsert(self, key: Any, draft: TimelineDraft, snapshot: Any = None) -> Any:
        ...

    def reload(self, timeline_id: Any) -> Any:
        ...


@dataclass
class PersistResult:
    """Canonical record plus retry bookkeeping."""
    record: Any
    attempts: int
    delays: List[float] = field(default_factory=list)


class RetryablePersister:
    """
    Wraps ``store.upsert`` in bounded retries.

    Only transient errors are retried; backoff is ``2 ** attempt`` seconds.
    """

    def __init__(
        self,
        store: TimelineStoreProtocol,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
        events: Optional[EventSink] = None,
    ):
        self.store = store
        self.max_attempts = max(1, max_attempts)
        self.sleep = sleep
        self.events = events or LoggingEventSink(logger)

    def persist(self, key: Any, draft: TimelineDraft, snapshot: Any = None) -> PersistResult:
        """
        Save ``draft`` and return the reloaded record.

        Args:
            key: Store key (user/target)
            draft: Reconciled draft
            snapshot: Metadata stored alongside the timeline

        Returns:
            PersistResult with the canonical record

        Raises:
            Exception: The store error, if it is not transient or attempts run out
        """
        delays: List[float] = []

        for attempt in range(1, self.max_attempts + 1):
            try:
                saved = self.store.upsert(key, draft, snapshot)
                break
            except Exception as e:
                if not is_transient_error(e) or attempt == self.max_attempts:
                    logger.error("Persisting timeline failed on attempt %d: %s", attempt, e)
                    raise
                delay = 2 ** attempt
                delays.append(delay)
                self.events.emit(
                    "persistence.retry",
                    attempt=attempt,
                    delay_s=delay,
                    error=str(e),
                )
                self.sleep(delay)

        record = self.store.reload(_record_id(saved))
        return PersistResult(record=record, attempts=attempt, delays=delays)


def _record_id(saved: Any) -> Any:
    return getattr(saved, "id", saved)
