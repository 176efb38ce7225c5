"""Routing table of the notification router."""

from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest

from modules.notifications.constants import Channel, NotificationType, RecipientType, Role
from modules.notifications.delivery import (
    InMemoryDelivery,
    LoggingDelivery,
    get_delivery,
)
from modules.notifications.events import NotificationEvent, Recipient
from modules.notifications.router import NotificationRouter
from shared.domain.failures import FailureKind

pytestmark = pytest.mark.unit


@pytest.fixture()
def memory():
    return InMemoryDelivery()


@pytest.fixture()
def order():
    return SimpleNamespace(id=uuid4(), customer_id=uuid4(), order_number="ORD-20260101-ABC123")


@pytest.fixture()
def payment():
    return SimpleNamespace(id=uuid4(), transaction_id="ch_123")


def _recipients(delivery):
    return [(n["recipient_type"], n["recipient_id"]) for n in delivery.sent]


class TestOrderFailureRouting:
    def test_shortage_goes_to_inventory_operations(self, memory, order):
        NotificationRouter(memory).notify_order_failure(
            order, FailureKind.INSUFFICIENT_STOCK, "Insufficient inventory for X"
        )

        (sent,) = memory.sent
        assert sent["recipient_id"] == Role.INVENTORY_MANAGER
        assert sent["notification_type"] == NotificationType.INVENTORY_SHORTAGE
        assert sent["channel"] == Channel.IN_APP
        assert sent["details"] == {"failure_kind": "insufficient_stock"}

    @pytest.mark.parametrize(
        "kind",
        [
            FailureKind.PAYMENT_FAILED,
            FailureKind.PAYMENT_VERIFICATION_FAILED,
            FailureKind.EXTERNAL_SERVICE,
        ],
    )
    def test_payment_kinds_go_to_the_customer(self, memory, order, kind):
        NotificationRouter(memory).notify_order_failure(order, kind, "declined")

        (sent,) = memory.sent
        assert sent["recipient_type"] == RecipientType.USER
        assert sent["recipient_id"] == str(order.customer_id)
        assert sent["channel"] == Channel.EMAIL
        assert sent["message"] == (
            "Your payment could not be processed. Please update your payment information."
        )

    @pytest.mark.parametrize(
        "kind",
        [
            FailureKind.INVENTORY_RECORD_NOT_FOUND,
            FailureKind.PAYMENT_METHOD_NOT_FOUND,
            FailureKind.PAYMENT_NOT_FOUND,
            FailureKind.UNKNOWN,
        ],
    )
    def test_everything_else_goes_to_system_operations(self, memory, order, kind):
        NotificationRouter(memory).notify_order_failure(order, kind, "boom")

        assert _recipients(memory) == [(RecipientType.ROLE, Role.SYSTEM_ADMIN)]
        assert memory.sent[0]["notification_type"] == NotificationType.SYSTEM_ERROR


class TestPaymentFailureRouting:
    def test_payment_kind_reaches_customer_and_payment_operations(
        self, memory, order, payment
    ):
        delivered = NotificationRouter(memory).notify_payment_failure(
            payment, order, FailureKind.PAYMENT_FAILED, "Card declined"
        )

        assert delivered == 2
        assert _recipients(memory) == [
            (RecipientType.USER, str(order.customer_id)),
            (RecipientType.ROLE, Role.PAYMENT_ADMIN),
        ]
        assert f"Payment {payment.id} for order {order.id} failed: Card declined" == (
            memory.sent[1]["message"]
        )

    def test_integration_fault_also_reaches_system_operations(
        self, memory, order, payment
    ):
        NotificationRouter(memory).notify_payment_failure(
            payment, order, FailureKind.PAYMENT_METHOD_NOT_FOUND, "no method"
        )

        assert _recipients(memory)[1:] == [
            (RecipientType.ROLE, Role.PAYMENT_ADMIN),
            (RecipientType.ROLE, Role.SYSTEM_ADMIN),
        ]


class TestOtherNotices:
    def test_payment_completed(self, memory, order, payment):
        NotificationRouter(memory).notify_payment_completed(payment, order, "$12.00")

        (sent,) = memory.sent
        assert sent["message"] == (
            "Your payment of $12.00 for order #ORD-20260101-ABC123 has been completed."
        )
        assert sent["details"] == {"transaction_id": "ch_123"}

    def test_order_confirmed(self, memory, order):
        NotificationRouter(memory).notify_order_confirmed(order)
        assert memory.sent[0]["notification_type"] == NotificationType.ORDER_CONFIRMED

    def test_low_stock(self, memory):
        record = SimpleNamespace(id=uuid4(), quantity=3, reorder_threshold=5)

        NotificationRouter(memory).notify_low_stock(record, "SKU-1")

        (sent,) = memory.sent
        assert sent["recipient_id"] == Role.INVENTORY_MANAGER
        assert sent["message"] == (
            "Low stock alert: 3 items remaining for SKU-1 (threshold 5)."
        )


class TestDeliveryFailures:
    def test_failed_delivery_is_swallowed(self, memory, order):
        memory.configure(should_fail=True)

        delivered = NotificationRouter(memory).notify_order_failure(
            order, FailureKind.UNKNOWN, "boom"
        )

        assert delivered == 0

    def test_one_failing_recipient_does_not_block_the_next(self, order):
        class FlakyDelivery(InMemoryDelivery):
            def notify(self, recipient_type, recipient_id, *args, **kwargs):
                if recipient_id == Role.PAYMENT_ADMIN:
                    raise RuntimeError("pager down")
                super().notify(recipient_type, recipient_id, *args, **kwargs)

        delivery = FlakyDelivery()
        event = NotificationEvent(
            notification_type=NotificationType.SYSTEM_ERROR,
            title="t",
            message="m",
            reference_type="Order",
            reference_id=str(order.id),
            recipients=(Recipient.role(Role.PAYMENT_ADMIN), Recipient.role(Role.SYSTEM_ADMIN)),
        )

        assert NotificationRouter(delivery).route(event) == 1
        assert _recipients(delivery) == [(RecipientType.ROLE, Role.SYSTEM_ADMIN)]


class TestDeliveryAdapters:
    def test_configured_adapter_is_a_singleton(self):
        assert isinstance(get_delivery(), InMemoryDelivery)
        assert get_delivery() is get_delivery()

    def test_logging_delivery_accepts_messages(self):
        LoggingDelivery().notify(
            recipient_type=RecipientType.USER,
            recipient_id="c1",
            notification_type=NotificationType.ORDER_CONFIRMED,
            title="Order Confirmed",
            message="hi",
            reference_type="Order",
            reference_id="o1",
            channel=Channel.EMAIL,
        )

    def test_router_defaults_to_configured_adapter(self):
        assert NotificationRouter().delivery is get_delivery()
