"""Base class for aggregates that record domain events."""

import threading

from ..events import DomainEvent


class AggregateRoot:
    """
    Records domain events raised while the aggregate mutates its state.

    Events are collected and published by the owner after its locks are
    released, so subscribers can call back into the aggregate safely.
    """

    def __init__(self):
        self._uncommitted_events: list[DomainEvent] = []
        self._events_lock = threading.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        """Incremented on every recorded state change."""
        return self._version

    def _increment_version(self) -> None:
        self._version += 1

    def _record_event(self, event: DomainEvent) -> None:
        with self._events_lock:
            self._uncommitted_events.append(event)

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear all uncommitted events, oldest first."""
        with self._events_lock:
            events = self._uncommitted_events
            self._uncommitted_events = []
        return events
