"""Subscribe/notify support for the workflow state objects.

Each recording controller, filing state machine and workflow instance owns
its own listener list. Listeners are plain callables invoked synchronously
on the event loop thread, in subscription order.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


@dataclass(frozen=True)
class WorkflowEvent:
    """A single observable change of workflow state."""

    source: str
    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))


Listener = Callable[[WorkflowEvent], None]


class Observable:
    """Mixin holding listeners and broadcasting WorkflowEvents."""

    event_source: str = "workflow"

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, name: str, **payload: Any) -> None:
        event = WorkflowEvent(source=self.event_source, name=name, payload=payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("listener_failed", source=self.event_source, event=name)
