"""Unit tests for the OutboxEvent model.

Covers:
- ``record()`` builds a pending row from a domain event.
- Default status and UUIDv7 primary key.
- ``mark_as_published()`` / ``mark_as_failed()`` transitions.
- ``pending()`` / ``for_aggregate()`` querysets.
"""

from __future__ import annotations

import uuid

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.orders.events import OrderStatusChanged

pytestmark = pytest.mark.unit


def _make_event(**overrides) -> OutboxEvent:
    defaults = {
        "event_type": "OrderCreated",
        "payload": {"order_id": "abc-123", "total": "99.90"},
        "aggregate_id": "abc-123",
        "topic": "orders",
    }
    defaults.update(overrides)
    return OutboxEvent.objects.create(**defaults)


class TestOutboxEventCreation:
    def test_create_event_with_defaults(self):
        event = _make_event()
        event.refresh_from_db()
        assert event.status == EventStatus.PENDING
        assert event.processed_at is None
        assert event.error_message is None
        assert event.retry_count == 0

    def test_id_is_uuid7(self):
        event = _make_event()
        assert isinstance(event.id, uuid.UUID)
        assert event.id.version == 7

    def test_record_from_domain_event(self):
        aggregate_id = uuid.uuid4()
        domain_event = OrderStatusChanged(
            aggregate_id=aggregate_id,
            data={"old_status": "PENDING", "new_status": "PROCESSING"},
        )

        row = OutboxEvent.record(domain_event, topic="orders")
        row.refresh_from_db()

        assert row.event_type == "OrderStatusChanged"
        assert row.aggregate_id == str(aggregate_id)
        assert row.topic == "orders"
        assert row.payload["data"] == {"old_status": "PENDING", "new_status": "PROCESSING"}
        assert row.payload["event_id"] == str(domain_event.event_id)


class TestOutboxEventTransitions:
    def test_mark_as_published(self):
        event = _make_event()

        event.mark_as_published()
        event.refresh_from_db()

        assert event.status == EventStatus.PUBLISHED
        assert event.processed_at is not None

    def test_mark_as_failed_increments_retry(self):
        event = _make_event()
        event.mark_as_failed("Error 1")
        event.mark_as_failed("Error 2")
        event.refresh_from_db()

        assert event.status == EventStatus.FAILED
        assert event.retry_count == 2
        assert event.error_message == "Error 2"

    def test_mark_as_failed_updates_updated_at(self):
        event = _make_event()
        original_updated_at = event.updated_at

        event.mark_as_failed("Something broke")
        event.refresh_from_db()

        assert event.updated_at > original_updated_at


class TestOutboxEventQueries:
    def test_pending_excludes_published_and_failed(self):
        first = _make_event(aggregate_id="a")
        published = _make_event(aggregate_id="b")
        failed = _make_event(aggregate_id="c")
        published.mark_as_published()
        failed.mark_as_failed("broker down")

        assert list(OutboxEvent.objects.pending()) == [first]

    def test_for_aggregate_accepts_uuid(self):
        aggregate_id = uuid.uuid4()
        mine = _make_event(aggregate_id=str(aggregate_id))
        _make_event(aggregate_id="someone-else")

        assert list(OutboxEvent.objects.for_aggregate(aggregate_id)) == [mine]

    def test_str_representation(self):
        event = _make_event(event_type="OrderFailed", aggregate_id="order-456")
        result = str(event)
        assert "OrderFailed" in result
        assert "PENDING" in result
        assert "order-456" in result
