"""Event Publisher port - interface for publishing events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessingEvent:
    """Event during asset registry changes or processing."""
    stage: str
    message: str
    progress: float | None = None  # 0.0 to 1.0
    asset_id: str | None = None


@runtime_checkable
class EventPublisher(Protocol):
    """Port for publishing processing events."""

    def publish(self, event: ProcessingEvent) -> None:
        """Publish an event."""
        ...

    def subscribe(self, callback: Callable[[ProcessingEvent], None]) -> None:
        """Subscribe to events."""
        ...


class SimpleEventPublisher:
    """Simple synchronous event publisher.

    A failing subscriber is logged and skipped so it cannot break the
    mutation that published the event.
    """

    def __init__(self):
        self._subscribers: list[Callable[[ProcessingEvent], None]] = []

    def publish(self, event: ProcessingEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Event subscriber failed on '{event.stage}'")

    def subscribe(self, callback: Callable[[ProcessingEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[ProcessingEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)
