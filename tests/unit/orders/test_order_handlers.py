"""Unit tests for Orders event handlers and their bus wiring."""

from __future__ import annotations

import logging
from uuid import uuid4

import pytest

from modules.orders.events import (
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderFailed,
    OrderStatusChanged,
)
from modules.orders.handlers import (
    OrderCancelledHandler,
    OrderCompletedHandler,
    OrderCreatedHandler,
    OrderFailedHandler,
    OrderStatusChangedHandler,
    order_created_handler,
)
from shared.infrastructure.bus import event_bus

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "handler,event,fragment",
    [
        (OrderCreatedHandler(), OrderCreated, "Processando evento de criação do pedido"),
        (
            OrderStatusChangedHandler(),
            OrderStatusChanged,
            "Processando mudança de status do pedido",
        ),
        (OrderFailedHandler(), OrderFailed, "falhou no processamento"),
        (OrderCompletedHandler(), OrderCompleted, "concluído"),
        (OrderCancelledHandler(), OrderCancelled, "Processando cancelamento do pedido"),
    ],
)
def test_handler_logs(caplog, handler, event, fragment):
    with caplog.at_level(logging.INFO, logger="modules.orders.handlers"):
        handler.handle(event(aggregate_id=uuid4()))

    assert any(fragment in record.getMessage() for record in caplog.records)


def test_failed_handler_logs_a_warning(caplog):
    with caplog.at_level(logging.INFO, logger="modules.orders.handlers"):
        OrderFailedHandler().handle(
            OrderFailed(aggregate_id=uuid4(), data={"failure_kind": "insufficient_stock"})
        )

    assert any(record.levelno == logging.WARNING for record in caplog.records)


def test_app_ready_subscribes_handlers():
    handlers = event_bus._handlers.get(OrderCreated, [])
    assert order_created_handler in handlers
