"""Tests for EventBus."""

from mcp_fleet.domain.events import DomainEvent, ProviderAdded, ProviderRemoved
from mcp_fleet.infrastructure.event_bus import EventBus


class TestEventBus:
    """Tests for publish/subscribe behaviour."""

    def test_typed_subscription(self):
        bus = EventBus()
        received = []
        bus.subscribe(ProviderRemoved, received.append)

        bus.publish(ProviderRemoved(provider_id="fs"))

        assert [e.provider_id for e in received] == ["fs"]

    def test_typed_subscription_ignores_other_types(self):
        bus = EventBus()
        received = []
        bus.subscribe(ProviderRemoved, received.append)

        bus.publish(DomainEvent())

        assert received == []

    def test_base_type_receives_subclasses(self):
        bus = EventBus()
        received = []
        bus.subscribe(DomainEvent, received.append)

        bus.publish(ProviderRemoved(provider_id="fs"))

        assert len(received) == 1

    def test_subscribe_to_all(self):
        bus = EventBus()
        received = []
        bus.subscribe_to_all(received.append)

        bus.publish(ProviderRemoved(provider_id="a"))
        bus.publish(DomainEvent())

        assert len(received) == 2

    def test_failing_handler_is_isolated(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("handler bug")

        bus.subscribe(ProviderRemoved, broken)
        bus.subscribe(ProviderRemoved, received.append)

        bus.publish(ProviderRemoved(provider_id="fs"))

        assert len(received) == 1

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe(ProviderRemoved, received.append)

        assert bus.unsubscribe(received.append, ProviderRemoved) is True
        assert bus.unsubscribe(received.append) is False

        bus.publish(ProviderRemoved(provider_id="fs"))
        assert received == []

    def test_handler_may_unsubscribe_during_publish(self):
        bus = EventBus()
        calls = []

        def once(event):
            calls.append(event)
            bus.unsubscribe(once)

        bus.subscribe_to_all(once)
        bus.publish(ProviderRemoved(provider_id="a"))
        bus.publish(ProviderRemoved(provider_id="b"))

        assert len(calls) == 1

    def test_publish_all_keeps_order(self):
        bus = EventBus()
        received = []
        bus.subscribe_to_all(received.append)

        bus.publish_all([ProviderRemoved(provider_id="a"), ProviderRemoved(provider_id="b")])

        assert [e.provider_id for e in received] == ["a", "b"]

    def test_event_metadata(self):
        event = ProviderRemoved(provider_id="fs")

        data = event.to_dict()
        assert data["event_type"] == "ProviderRemoved"
        assert data["event_id"] == event.event_id
        assert event.occurred_at > 0

    def test_clear(self):
        bus = EventBus()
        received = []
        bus.subscribe_to_all(received.append)
        bus.subscribe(ProviderAdded, received.append)

        bus.clear()
        bus.publish(ProviderRemoved(provider_id="fs"))

        assert received == []
