"""Unit tests for domain events registration on entities."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.core.models import serialize_event_payload
from modules.orders.constants import OrderStatus
from modules.orders.events import OrderCreated, OrderFailed
from modules.orders.models import Order
from shared.infrastructure.bus import InMemoryEventBus

pytestmark = pytest.mark.unit


def test_order_registers_and_clears_domain_events():
    order = Order(
        customer_id=uuid4(),
        order_number="ORD-TEST-000001",
        status=OrderStatus.PENDING,
        total_amount=Decimal("0.00"),
    )

    assert order.domain_events == []

    event = OrderCreated(aggregate_id=order.id)
    order.add_domain_event(event)

    assert order.domain_events == [event]
    assert event.event_name == "OrderCreated"

    order.clear_domain_events()
    assert order.domain_events == []


def test_event_payload_is_json_ready():
    aggregate_id = uuid4()
    event = OrderFailed(
        aggregate_id=aggregate_id,
        data={"failure_kind": "insufficient_stock", "total": Decimal("9.90")},
    )

    payload = serialize_event_payload(event)

    assert payload["aggregate_id"] == str(aggregate_id)
    assert payload["event_name"] == "OrderFailed"
    assert payload["data"] == {"failure_kind": "insufficient_stock", "total": "9.90"}
    assert isinstance(payload["occurred_on"], str)


class TestInMemoryEventBus:
    def test_routes_events_to_subscribers(self):
        bus = InMemoryEventBus()
        handled = []

        class CapturingHandler:
            def handle(self, event) -> None:
                handled.append(event)

        event = OrderCreated(aggregate_id=uuid4())
        bus.subscribe(OrderCreated, CapturingHandler())
        bus.publish(event)

        assert handled == [event]

    def test_failing_handler_does_not_stop_the_others(self):
        bus = InMemoryEventBus()
        handled = []

        class BrokenHandler:
            def handle(self, event) -> None:
                raise RuntimeError("projection down")

        class CapturingHandler:
            def handle(self, event) -> None:
                handled.append(event)

        bus.subscribe(OrderCreated, BrokenHandler())
        bus.subscribe(OrderCreated, CapturingHandler())
        events = [OrderCreated(aggregate_id=uuid4()), OrderCreated(aggregate_id=uuid4())]

        bus.publish_all(events)

        assert handled == events

    def test_subscribing_twice_delivers_once(self):
        bus = InMemoryEventBus()
        handled = []

        class CapturingHandler:
            def handle(self, event) -> None:
                handled.append(event)

        handler = CapturingHandler()
        bus.subscribe(OrderCreated, handler)
        bus.subscribe(OrderCreated, handler)
        bus.publish(OrderCreated(aggregate_id=uuid4()))

        assert len(handled) == 1
