"""
Event Bus - publishes domain events to their subscribers.

Events represent facts that already happened. Unlike commands, an event can
have any number of handlers, including none. A failing handler is logged and
skipped; it never affects the publisher or the remaining handlers.
"""

from collections.abc import Callable
import threading

from ..domain.events import DomainEvent
from ..logging_config import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[DomainEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe channel.

    Handlers run in the publisher's thread, in subscription order: typed
    handlers first, then catch-all handlers. The subscriber lists are copied
    under a lock before dispatch so handlers may subscribe or unsubscribe
    while an event is being delivered.
    """

    def __init__(self):
        self._handlers: dict[type[DomainEvent], list[EventHandler]] = {}
        self._global_handlers: list[EventHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        """
        Register a handler for one event type (and its subclasses).

        Args:
            event_type: The type of event to handle
            handler: Callable invoked with each matching event
        """
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
        logger.debug("event_handler_subscribed", event_type=event_type.__name__)

    def subscribe_to_all(self, handler: EventHandler) -> None:
        """Register a handler that receives every event."""
        with self._lock:
            self._global_handlers.append(handler)

    def unsubscribe(self, handler: EventHandler, event_type: type[DomainEvent] | None = None) -> bool:
        """
        Remove a handler.

        Returns:
            True if the handler was found and removed
        """
        removed = False
        with self._lock:
            if event_type is None:
                if handler in self._global_handlers:
                    self._global_handlers.remove(handler)
                    removed = True
                for handlers in self._handlers.values():
                    if handler in handlers:
                        handlers.remove(handler)
                        removed = True
            else:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)
                    removed = True
        return removed

    def publish(self, event: DomainEvent) -> None:
        """
        Deliver an event to every matching handler.

        Args:
            event: The event to publish
        """
        with self._lock:
            targets: list[EventHandler] = []
            for event_type, handlers in self._handlers.items():
                if isinstance(event, event_type):
                    targets.extend(handlers)
            targets.extend(self._global_handlers)

        for handler in targets:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    event_type=event.event_type,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                    exc_info=True,
                )

    def publish_all(self, events: list[DomainEvent]) -> None:
        for event in events:
            self.publish(event)

    def clear(self) -> None:
        """Drop all subscriptions (for testing)."""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()
