"""Integrity signal sources for running attempts."""

import logging
from collections.abc import Callable
from typing import Protocol

from examhall.models.session import IntegrityEventType

logger = logging.getLogger(__name__)

IntegrityListener = Callable[[IntegrityEventType], None]


class IntegrityEventSource(Protocol):
    """Something that reports visibility and focus changes."""

    def subscribe(self, listener: IntegrityListener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        ...


class IntegrityEventBus:
    """In-process event source fed by browser reports or by tests."""

    def __init__(self):
        self._listeners: list[IntegrityListener] = []

    def subscribe(self, listener: IntegrityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: IntegrityEventType) -> None:
        logger.debug(f"Integrity event {event.value} -> {len(self._listeners)} listener(s)")
        for listener in list(self._listeners):
            listener(event)
