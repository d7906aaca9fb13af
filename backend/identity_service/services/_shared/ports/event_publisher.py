"""Port for emitting domain events to a message stream."""

from __future__ import annotations

import threading
from typing import Any, Protocol


class EventPublishFailed(Exception):
    """Raised when the broker does not acknowledge an event."""


class DomainEvent(Protocol):
    """Anything that can render itself as a JSON-compatible payload."""

    def to_payload(self) -> dict[str, Any]: ...


class EventPublisher(Protocol):
    """
    Publish domain events to named topics.

    :meth:`publish` and :meth:`publish_with_key` return only after the broker
    acknowledged the event; :meth:`publish_async` is fire-and-forget.
    """

    def publish(self, topic: str, event: DomainEvent) -> None: ...

    def publish_async(self, topic: str, event: DomainEvent) -> None: ...

    def publish_with_key(self, topic: str, key: str, event: DomainEvent) -> None: ...


class InMemoryEventPublisher(EventPublisher):
    """Collect published events as ``(topic, key, payload)`` tuples."""

    def __init__(self) -> None:
        self.published: list[tuple[str, str | None, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def _record(self, topic: str, key: str | None, event: DomainEvent) -> None:
        with self._lock:
            self.published.append((topic, key, event.to_payload()))

    def publish(self, topic: str, event: DomainEvent) -> None:
        self._record(topic, None, event)

    def publish_async(self, topic: str, event: DomainEvent) -> None:
        self._record(topic, None, event)

    def publish_with_key(self, topic: str, key: str, event: DomainEvent) -> None:
        self._record(topic, key, event)

    def events_for(self, topic: str) -> list[dict[str, Any]]:
        """Return the payloads published to ``topic`` in order."""
        return [payload for t, _, payload in self.published if t == topic]
