"""Single-handler-per-topic registry shared by responders and receivers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .errors import DuplicateHandlerError

logger = logging.getLogger(__name__)

# Handlers return a value or an awaitable of it
Handler = Callable[[Any], Any]


class Registration:
    """A handler occupying a topic slot.

    ``cancel()`` vacates the slot so the topic can be registered again, and
    runs any cleanup attached by the owner (typically a bus unsubscribe).
    Cancelling twice is harmless.
    """

    def __init__(self, registry: HandlerRegistry, topic: str, handler: Handler) -> None:
        self._registry = registry
        self.topic = topic
        self.handler = handler
        self.cancelled = False
        self._cleanups: list[Callable[[], None]] = []

    def add_cleanup(self, cleanup: Callable[[], None]) -> None:
        """Attach a function to run on cancel."""
        if self.cancelled:
            cleanup()
            return
        self._cleanups.append(cleanup)

    def cancel(self) -> None:
        """Remove the handler. Requests already dispatched still complete."""
        if self.cancelled:
            return
        self.cancelled = True
        self._registry._vacate(self)
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups.clear()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"Registration(topic={self.topic!r}, {state})"


class HandlerRegistry:
    """Maps each topic to at most one active handler."""

    def __init__(self) -> None:
        self._registrations: dict[str, Registration] = {}

    def register(self, topic: str, handler: Handler) -> Registration:
        """Occupy a topic slot.

        Raises:
            DuplicateHandlerError: The topic already has an active handler
        """
        if topic in self._registrations:
            raise DuplicateHandlerError(topic)
        registration = Registration(self, topic, handler)
        self._registrations[topic] = registration
        logger.debug(f"Registered handler for {topic}")
        return registration

    def _vacate(self, registration: Registration) -> None:
        # A stale registration must not evict whoever holds the slot now
        if self._registrations.get(registration.topic) is registration:
            del self._registrations[registration.topic]
            logger.debug(f"Vacated handler slot for {registration.topic}")

    def lookup(self, topic: str) -> Handler | None:
        """Return the active handler for a topic, if any."""
        registration = self._registrations.get(topic)
        return registration.handler if registration else None

    def topics(self) -> list[str]:
        return list(self._registrations)

    def clear(self) -> int:
        """Cancel every registration.

        Returns:
            Number of registrations cancelled
        """
        registrations = list(self._registrations.values())
        for registration in registrations:
            registration.cancel()
        return len(registrations)

    def __contains__(self, topic: object) -> bool:
        return topic in self._registrations

    def __len__(self) -> int:
        return len(self._registrations)
