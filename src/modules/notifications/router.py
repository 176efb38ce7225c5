"""Notification Router.

Maps saga outcomes to recipients.  Routing is driven by the typed
``FailureKind`` of the failure, never by the text of its message:

====================================  ======================  =================================
Failure kind                          Order failure           Payment failure
====================================  ======================  =================================
INSUFFICIENT_STOCK                    inventory_manager       -
PAYMENT_FAILED / VERIFICATION /       customer                customer + payment_admin
EXTERNAL_SERVICE
anything else                         system_admin            customer + payment_admin
                                                              + system_admin
====================================  ======================  =================================

Every public method is safe to call from inside a failing job: delivery
errors are logged and swallowed, never raised to the caller.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import structlog

from modules.notifications.constants import NotificationType, Role
from modules.notifications.delivery import INotificationDelivery, get_delivery
from modules.notifications.events import NotificationEvent, Recipient
from shared.domain.failures import PAYMENT_FAILURE_KINDS, FailureKind

logger = structlog.get_logger(__name__)

CUSTOMER_PAYMENT_MESSAGE = (
    "Your payment could not be processed. Please update your payment information."
)


class NotificationRouter:
    def __init__(self, delivery: Optional[INotificationDelivery] = None) -> None:
        self._delivery = delivery

    @property
    def delivery(self) -> INotificationDelivery:
        if self._delivery is None:
            self._delivery = get_delivery()
        return self._delivery

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def route(self, event: NotificationEvent) -> int:
        """Deliver *event* to each of its recipients; returns successes."""
        delivered = 0
        for recipient in event.recipients:
            try:
                self.delivery.notify(
                    recipient_type=recipient.recipient_type,
                    recipient_id=recipient.recipient_id,
                    notification_type=event.notification_type,
                    title=event.title,
                    message=event.message,
                    reference_type=event.reference_type,
                    reference_id=event.reference_id,
                    channel=recipient.channel,
                    details=event.details,
                )
                delivered += 1
            except Exception:
                logger.exception(
                    "notification.delivery_failed",
                    notification_type=event.notification_type,
                    recipient_type=recipient.recipient_type,
                    recipient_id=recipient.recipient_id,
                    reference_id=event.reference_id,
                )
        return delivered

    def _safe_route(self, event: NotificationEvent) -> int:
        try:
            return self.route(event)
        except Exception:
            logger.exception(
                "notification.routing_failed",
                notification_type=event.notification_type,
                reference_id=event.reference_id,
            )
            return 0

    # ------------------------------------------------------------------
    # Order outcomes
    # ------------------------------------------------------------------

    def notify_order_failure(
        self,
        order: Any,
        kind: FailureKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> int:
        details = {"failure_kind": kind.value, **(details or {})}
        if kind == FailureKind.INSUFFICIENT_STOCK:
            event = NotificationEvent(
                notification_type=NotificationType.INVENTORY_SHORTAGE,
                title="Inventory Shortage",
                message=message,
                reference_type="Order",
                reference_id=str(order.id),
                recipients=(Recipient.role(Role.INVENTORY_MANAGER),),
                details=details,
            )
        elif kind in PAYMENT_FAILURE_KINDS:
            event = NotificationEvent(
                notification_type=NotificationType.PAYMENT_FAILURE,
                title="Payment Failed",
                message=CUSTOMER_PAYMENT_MESSAGE,
                reference_type="Order",
                reference_id=str(order.id),
                recipients=(Recipient.customer(order.customer_id),),
                details=details,
            )
        else:
            event = NotificationEvent(
                notification_type=NotificationType.SYSTEM_ERROR,
                title="Order Processing Error",
                message=message,
                reference_type="Order",
                reference_id=str(order.id),
                recipients=(Recipient.role(Role.SYSTEM_ADMIN),),
                details=details,
            )
        return self._safe_route(event)

    def notify_order_confirmed(self, order: Any) -> int:
        return self._safe_route(
            NotificationEvent(
                notification_type=NotificationType.ORDER_CONFIRMED,
                title="Order Confirmed",
                message=f"Your order #{order.order_number} has been confirmed.",
                reference_type="Order",
                reference_id=str(order.id),
                recipients=(Recipient.customer(order.customer_id),),
            )
        )

    # ------------------------------------------------------------------
    # Payment outcomes
    # ------------------------------------------------------------------

    def notify_payment_failure(
        self,
        payment: Any,
        order: Any,
        kind: FailureKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> int:
        details = {"failure_kind": kind.value, **(details or {})}
        customer_event = NotificationEvent(
            notification_type=NotificationType.PAYMENT_FAILED,
            title="Payment Failed",
            message=(
                f"Your payment for order #{order.order_number} could not be "
                "processed. Please update your payment information."
            ),
            reference_type="Payment",
            reference_id=str(payment.id),
            recipients=(Recipient.customer(order.customer_id),),
        )
        operators: Tuple[Recipient, ...] = (Recipient.role(Role.PAYMENT_ADMIN),)
        if kind not in PAYMENT_FAILURE_KINDS:
            operators += (Recipient.role(Role.SYSTEM_ADMIN),)
        operator_event = NotificationEvent(
            notification_type=NotificationType.PAYMENT_FAILED,
            title="Payment Failed",
            message=f"Payment {payment.id} for order {order.id} failed: {message}",
            reference_type="Payment",
            reference_id=str(payment.id),
            recipients=operators,
            details=details,
        )
        return self._safe_route(customer_event) + self._safe_route(operator_event)

    def notify_payment_completed(self, payment: Any, order: Any, amount_display: str) -> int:
        return self._safe_route(
            NotificationEvent(
                notification_type=NotificationType.PAYMENT_COMPLETED,
                title="Payment Completed",
                message=(
                    f"Your payment of {amount_display} for order "
                    f"#{order.order_number} has been completed."
                ),
                reference_type="Payment",
                reference_id=str(payment.id),
                recipients=(Recipient.customer(order.customer_id),),
                details={"transaction_id": payment.transaction_id},
            )
        )

    # ------------------------------------------------------------------
    # Inventory outcomes
    # ------------------------------------------------------------------

    def notify_low_stock(self, record: Any, sku: str) -> int:
        return self._safe_route(
            NotificationEvent(
                notification_type=NotificationType.LOW_STOCK,
                title="Low Stock",
                message=(
                    f"Low stock alert: {record.quantity} items remaining for "
                    f"{sku} (threshold {record.reorder_threshold})."
                ),
                reference_type="InventoryRecord",
                reference_id=str(record.id),
                recipients=(Recipient.role(Role.INVENTORY_MANAGER),),
                details={"sku": sku, "quantity": record.quantity},
            )
        )
