"""Tasks assíncronas do módulo de notificações."""

import structlog
from celery import shared_task

from modules.notifications.router import NotificationRouter

logger = structlog.get_logger(__name__)


@shared_task(name="notifications.order_confirmation")
def send_order_confirmation(order_id: str) -> bool:
    """Envia a confirmação do pedido ao cliente após a conclusão do saga."""
    from modules.orders.models import Order

    order = Order.objects.filter(id=order_id).first()
    if order is None:
        logger.warning("notification.order_not_found", order_id=order_id)
        return False
    return NotificationRouter().notify_order_confirmed(order) > 0
