"""
Structured event sinks.

Components that need to report what they did (continuation rounds,
reconciliation fixes, persistence retries) accept an ``EventSink`` instead
of printing. The default sink writes to the standard logging module;
orchestrators plug in a sink that also records events as evidence.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple


class EventSink(Protocol):
    """Receives named events with structured fields."""

    def emit(self, event: str, **fields: Any) -> None:
        ...


class LoggingEventSink:
    """Writes events to a logger as ``event key=value ...`` lines."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.logger = logger or logging.getLogger("app.events")
        self.level = level

    def emit(self, event: str, **fields: Any) -> None:
        rendered = " ".join(f"{key}={value!r}" for key, value in sorted(fields.items()))
        self.logger.log(self.level, "%s %s", event, rendered, extra={"event": event, "fields": fields})


class RecordingEventSink:
    """Keeps events in memory. Used by tests and for evidence collection."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, event: str, **fields: Any) -> None:
        self.events.append((event, fields))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


class CallbackEventSink:
    """Forwards events to a callback and then to an optional inner sink."""

    def __init__(
        self,
        callback: Callable[[str, Dict[str, Any]], None],
        inner: Optional[EventSink] = None,
    ):
        self.callback = callback
        self.inner = inner

    def emit(self, event: str, **fields: Any) -> None:
        self.callback(event, fields)
        if self.inner is not None:
            self.inner.emit(event, **fields)
