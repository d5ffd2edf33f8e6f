# Overview: Structured operation events (name, outcome, duration) for the stock engine.

"""
Every engine operation is wrapped with `observer.observe("<name>")`.

The wrapper measures wall-clock duration and emits one OperationEvent per call:
- outcome "ok" when the operation returns
- outcome = exc.kind for service errors (validation, not_found, conflict,
  insufficient_stock, internal)
- outcome "internal" for anything else

Sinks are plain callables registered with subscribe(). The default sink,
installed by init_app(), writes the event to the "scanpos.operations" logger.
A failing sink is logged and skipped; it never changes the operation result.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, asdict
from functools import wraps
from typing import Any, Callable, Iterator

OPERATIONS_LOGGER = "scanpos.operations"

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationEvent:
    operation: str
    outcome: str
    duration_ms: float
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


Sink = Callable[[OperationEvent], None]


def logging_sink(event: OperationEvent) -> None:
    logger = logging.getLogger(OPERATIONS_LOGGER)
    level = logging.INFO if event.outcome == "ok" else logging.WARNING
    if event.outcome == "internal":
        level = logging.ERROR
    logger.log(
        level,
        "%s %s in %.1fms",
        event.operation,
        event.outcome,
        event.duration_ms,
        extra={"event": event.to_dict()},
    )


class OperationObserver:
    def __init__(self) -> None:
        self._sinks: list[Sink] = []

    def init_app(self, app) -> None:
        app.extensions["scanpos.observer"] = self
        if logging_sink not in self._sinks:
            self._sinks.append(logging_sink)

    def subscribe(self, sink: Sink) -> Callable[[], None]:
        self._sinks.append(sink)

        def _unsubscribe() -> None:
            if sink in self._sinks:
                self._sinks.remove(sink)

        return _unsubscribe

    @contextmanager
    def recording(self) -> Iterator[list[OperationEvent]]:
        """Collect events emitted inside the block (used by tests)."""
        events: list[OperationEvent] = []
        unsubscribe = self.subscribe(events.append)
        try:
            yield events
        finally:
            unsubscribe()

    def emit(self, event: OperationEvent) -> None:
        for sink in list(self._sinks):
            try:
                sink(event)
            except Exception:
                log.exception("Operation event sink failed for %s", event.operation)

    def observe(self, operation: str):
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                started = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                except Exception as exc:
                    details = dict(getattr(exc, "details", None) or {})
                    self.emit(
                        OperationEvent(
                            operation=operation,
                            outcome=getattr(exc, "kind", "internal"),
                            duration_ms=(time.perf_counter() - started) * 1000,
                            details=details,
                        )
                    )
                    raise
                self.emit(
                    OperationEvent(
                        operation=operation,
                        outcome="ok",
                        duration_ms=(time.perf_counter() - started) * 1000,
                    )
                )
                return result

            return wrapper

        return decorator
