"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import (
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderFailed,
    OrderStatusChanged,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            f"Processando evento de criação do pedido {event.aggregate_id}",
            order_id=str(event.aggregate_id),
            total_amount=event.data.get("total_amount"),
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            f"Processando mudança de status do pedido {event.aggregate_id}",
            order_id=str(event.aggregate_id),
            old_status=event.data.get("old_status"),
            new_status=event.data.get("new_status"),
        )


class OrderFailedHandler(IEventHandler[OrderFailed]):
    def handle(self, event: OrderFailed) -> None:
        logger.warning(
            f"Pedido {event.aggregate_id} falhou no processamento",
            order_id=str(event.aggregate_id),
            failure_kind=event.data.get("failure_kind"),
        )


class OrderCompletedHandler(IEventHandler[OrderCompleted]):
    def handle(self, event: OrderCompleted) -> None:
        logger.info(
            f"Pedido {event.aggregate_id} concluído",
            order_id=str(event.aggregate_id),
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            f"Processando cancelamento do pedido {event.aggregate_id}",
            order_id=str(event.aggregate_id),
            released_lines=event.data.get("released_lines"),
        )


order_created_handler = OrderCreatedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
order_failed_handler = OrderFailedHandler()
order_completed_handler = OrderCompletedHandler()
order_cancelled_handler = OrderCancelledHandler()
