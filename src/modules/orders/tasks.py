"""Tasks assíncronas do módulo de pedidos."""

from typing import Optional

import structlog
from celery import shared_task

from modules.orders.processor import OrderProcessor

logger = structlog.get_logger(__name__)


@shared_task(name="orders.advance")
def advance_order(order_id: str) -> Optional[str]:
    """Avança o pedido no saga de fulfillment a partir do ``next_step`` salvo.

    Reexecuções são seguras: cada etapa confere o estado do pedido sob lock
    antes de agir.
    """
    order = OrderProcessor().advance(order_id)
    return order.status if order else None
