"""Order state machine (the ``orders.advance`` job).

``OrderProcessor.advance`` resumes an order at its persisted ``next_step``
and runs steps until the order completes or has to wait:

``RESERVE_INVENTORY``
    Claim ``PENDING -> PROCESSING``, reserve every line through the
    inventory ledger in entry order, then ``-> INVENTORY_CHECKED``.
``CAPTURE_PAYMENT``
    Run the payment state machine inline on the order's current payment.
    Card/wallet captures complete on the spot; bank transfers leave the
    order waiting for the confirmation job.
``AWAIT_PAYMENT``
    Act on the payment outcome once the payment job has re-triggered us.
    A failed payment raises its recorded error, so the order goes to
    ``ERROR`` like any other step failure.
``FINALIZE``
    Clear the cart, award loyalty credit, schedule shipment, confirmation
    and analytics jobs, ``PAID -> COMPLETED``.

Each step re-reads the order under a row lock and re-checks ``next_step``
before acting, so a duplicated or concurrent job sees the step already
taken and stops.  Orders in ``COMPLETED``, ``CANCELLED`` or ``ERROR`` are
never touched.

Any exception moves the order to ``ERROR`` and is routed by its
``FailureKind``; it is not re-raised.  Stock reserved before a shortage
stays reserved: the ``order`` movements identify it for reconciliation
and ``OrderService.cancel_order`` releases it.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import structlog
from django.db import transaction

from modules.customers.services import (
    CartService,
    ICartService,
    ILoyaltyService,
    LoyaltyService,
)
from modules.inventory.exceptions import InsufficientStock
from modules.inventory.services import InventoryLedger, StockReference
from modules.notifications.router import NotificationRouter
from modules.orders.constants import IN_FLIGHT_STATES, OrderStatus, SagaStep
from modules.orders.events import OrderCompleted, OrderFailed, OrderStatusChanged
from modules.orders.exceptions import InvalidOrderStatus
from modules.orders.models import Order
from modules.orders.repositories import IOrderRepository, OrderDjangoRepository
from modules.payments.constants import PaymentStatus
from modules.payments.exceptions import (
    ExternalServiceError,
    PaymentNotFound,
    failure_from_payment,
)
from modules.payments.models import Payment
from modules.payments.repositories import IPaymentRepository, PaymentDjangoRepository
from modules.payments.services import PaymentProcessor
from shared.domain.failures import FailureKind, classify_failure
from shared.domain.scheduler import IJobScheduler, JobType
from shared.infrastructure.scheduler import CeleryJobScheduler

logger = structlog.get_logger(__name__)

SYSTEM_ACTOR = "system"


class OrderProcessor:
    """Advances orders through the fulfillment saga.

    Collaborators are injected; ``NullCartService``/``NullLoyaltyService``
    stand in where a deployment has no cart storage or loyalty programme.
    """

    def __init__(
        self,
        order_repository: Optional[IOrderRepository] = None,
        payment_repository: Optional[IPaymentRepository] = None,
        scheduler: Optional[IJobScheduler] = None,
        router: Optional[NotificationRouter] = None,
        ledger: Optional[InventoryLedger] = None,
        payment_processor: Optional[PaymentProcessor] = None,
        cart_service: Optional[ICartService] = None,
        loyalty_service: Optional[ILoyaltyService] = None,
    ) -> None:
        self._orders = order_repository or OrderDjangoRepository()
        self._payments = payment_repository or PaymentDjangoRepository()
        self._scheduler = scheduler or CeleryJobScheduler()
        self._router = router or NotificationRouter()
        self._ledger = ledger or InventoryLedger(self._router, self._scheduler)
        self._payment_processor = payment_processor or PaymentProcessor(
            self._payments, self._scheduler, self._router
        )
        self._cart = cart_service or CartService()
        self._loyalty = loyalty_service or LoyaltyService()
        self._steps: Dict[str, Callable[[Order], bool]] = {
            SagaStep.RESERVE_INVENTORY: self._reserve_inventory,
            SagaStep.CAPTURE_PAYMENT: self._capture_payment,
            SagaStep.AWAIT_PAYMENT: self._await_payment,
            SagaStep.FINALIZE: self._finalize,
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def advance(self, order_id: Any) -> Optional[Order]:
        """Run the order's saga from its ``next_step`` as far as it can go.

        Returns the reloaded order (``None`` if it does not exist).  Only a
        failure while recording a failure escapes this method.
        """
        log = logger.bind(order_id=str(order_id))
        order = self._orders.get_by_id(str(order_id))
        if order is None:
            log.warning("order.advance_not_found")
            return None
        if order.is_halted:
            log.info("order.advance_skipped", status=order.status)
            return order

        log.info("order.advance_started", status=order.status, next_step=order.next_step)
        try:
            while self._run_next_step(order_id):
                pass
        except Exception as exc:
            self._record_failure(order_id, exc)

        order = self._orders.get_by_id(str(order_id))
        log.info("order.advance_finished", status=order.status, next_step=order.next_step)
        return order

    def _run_next_step(self, order_id: Any) -> bool:
        """Run one step; ``True`` when the next step can run right away."""
        order = self._orders.get_by_id(str(order_id))
        if order is None or order.is_halted:
            return False
        step = self._steps.get(order.next_step)
        if step is None:
            return False
        return step(order)

    # ------------------------------------------------------------------
    # RESERVE_INVENTORY
    # ------------------------------------------------------------------

    def _reserve_inventory(self, order: Order) -> bool:
        with transaction.atomic():
            locked = self._lock(order.id)
            if locked.next_step != SagaStep.RESERVE_INVENTORY or locked.status not in (
                OrderStatus.PENDING,
                OrderStatus.PROCESSING,
            ):
                return False
            if locked.status == OrderStatus.PENDING:
                self._set_status(locked, OrderStatus.PROCESSING, "Order processing started")
                self._orders.save(locked)

        # Each line commits on its own; see the module docstring.
        lines = list(order.items.order_by("position"))
        result = self._ledger.check_and_reserve(lines, StockReference.for_order(order))
        if not result.ok:
            shortage = result.shortages[0]
            raise InsufficientStock(
                shortage.message,
                details={
                    "sku": shortage.sku,
                    "requested": shortage.requested,
                    "available": shortage.available,
                },
            )

        with transaction.atomic():
            locked = self._lock(order.id)
            if (
                locked.next_step != SagaStep.RESERVE_INVENTORY
                or locked.status != OrderStatus.PROCESSING
            ):
                return False
            self._set_status(locked, OrderStatus.INVENTORY_CHECKED, "Inventory reserved")
            locked.next_step = SagaStep.CAPTURE_PAYMENT
            self._orders.save(locked)
        return True

    # ------------------------------------------------------------------
    # CAPTURE_PAYMENT / AWAIT_PAYMENT
    # ------------------------------------------------------------------

    def _capture_payment(self, order: Order) -> bool:
        if not self._still_at(order, SagaStep.CAPTURE_PAYMENT, OrderStatus.INVENTORY_CHECKED):
            return False

        payment = self._current_payment(order)
        if payment.status == PaymentStatus.PENDING:
            try:
                self._payment_processor.process_payment(payment.id, retryable=True)
            except ExternalServiceError as exc:
                logger.warning(
                    "order.payment_deferred",
                    order_id=str(order.id),
                    payment_id=str(payment.id),
                    error=str(exc),
                )
                self._scheduler.schedule(
                    JobType.PROCESS_PAYMENT, {"payment_id": str(payment.id)}
                )
                self._move_step(order, SagaStep.CAPTURE_PAYMENT, SagaStep.AWAIT_PAYMENT)
                return False
            payment = self._payments.get_by_id(str(payment.id))

        return self._apply_payment_outcome(order, payment)

    def _await_payment(self, order: Order) -> bool:
        if not self._still_at(order, SagaStep.AWAIT_PAYMENT, OrderStatus.INVENTORY_CHECKED):
            return False
        return self._apply_payment_outcome(order, self._current_payment(order))

    def _apply_payment_outcome(self, order: Order, payment: Payment) -> bool:
        with transaction.atomic():
            locked = self._lock(order.id)
            if locked.status != OrderStatus.INVENTORY_CHECKED or locked.next_step not in (
                SagaStep.CAPTURE_PAYMENT,
                SagaStep.AWAIT_PAYMENT,
            ):
                return False
            log = logger.bind(
                order_id=str(order.id),
                payment_id=str(payment.id),
                payment_status=payment.status,
            )

            if payment.status == PaymentStatus.COMPLETED:
                self._set_status(locked, OrderStatus.PAID, "Payment completed")
                locked.next_step = SagaStep.FINALIZE
                self._orders.save(locked)
                log.info("order.paid")
                return True

            if payment.status in (
                PaymentStatus.PROCESSING,
                PaymentStatus.PENDING_CONFIRMATION,
            ):
                if locked.next_step != SagaStep.AWAIT_PAYMENT:
                    locked.next_step = SagaStep.AWAIT_PAYMENT
                    self._orders.save(locked)
                log.info("order.awaiting_payment")
                return False

            if payment.status == PaymentStatus.PENDING:
                # A fresh attempt (or a released claim) needs capturing.
                if locked.next_step == SagaStep.AWAIT_PAYMENT:
                    locked.next_step = SagaStep.CAPTURE_PAYMENT
                    self._orders.save(locked)
                    return True
                return False

            if payment.status == PaymentStatus.FAILED:
                log.info("order.payment_failed", failure_kind=payment.failure_kind)
                raise failure_from_payment(payment)

            log.warning("order.payment_status_unexpected")
            return False

    def _current_payment(self, order: Order) -> Payment:
        payment = self._payments.current_for_order(order.id)
        if payment is None:
            raise PaymentNotFound(f"No payment found for order #{order.order_number}")
        return payment

    # ------------------------------------------------------------------
    # FINALIZE
    # ------------------------------------------------------------------

    def _finalize(self, order: Order) -> bool:
        with transaction.atomic():
            locked = self._lock(order.id)
            if locked.next_step != SagaStep.FINALIZE or locked.status != OrderStatus.PAID:
                return False

            self._cart.clear_active_cart(locked.customer_id)
            self._loyalty.award_for_order(locked)

            payload = {"order_id": str(locked.id)}
            self._scheduler.schedule(JobType.CREATE_SHIPMENT, payload)
            self._scheduler.schedule(JobType.ORDER_CONFIRMATION, payload)
            self._scheduler.schedule(
                JobType.UPDATE_ANALYTICS,
                {
                    "event": "order_completed",
                    "order_id": str(locked.id),
                    "customer_id": str(locked.customer_id),
                    "total_amount": str(locked.total_amount),
                    "currency": locked.currency,
                },
            )

            self._set_status(locked, OrderStatus.COMPLETED, "Order completed")
            locked.next_step = SagaStep.DONE
            locked.add_domain_event(OrderCompleted(aggregate_id=locked.id))
            self._orders.save(locked)

        logger.info("order.completed", order_id=str(order.id))
        return False

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _record_failure(self, order_id: Any, exc: Exception) -> None:
        kind = classify_failure(exc)
        message = str(exc) or exc.__class__.__name__
        log = logger.bind(order_id=str(order_id), failure_kind=kind.value)
        if kind == FailureKind.UNKNOWN:
            log.error("order.advance_failed", error=message, exc_info=exc)
        else:
            log.warning("order.advance_failed", error=message)

        with transaction.atomic():
            locked = self._lock(order_id)
            if locked.status not in IN_FLIGHT_STATES:
                log.info("order.failure_not_recorded", status=locked.status)
                return
            previous_status = locked.status
            self._set_status(locked, OrderStatus.ERROR, f"Error: {message}")
            locked.add_domain_event(
                OrderFailed(
                    aggregate_id=locked.id,
                    data={"failure_kind": kind.value, "message": message},
                )
            )
            self._orders.save(locked)

        details = {
            "order_number": locked.order_number,
            "previous_status": previous_status,
            "next_step": locked.next_step,
            "exception": exc.__class__.__name__,
            **getattr(exc, "details", {}),
        }
        self._router.notify_order_failure(locked, kind, message, details=details)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock(self, order_id: Any) -> Order:
        order = self._orders.get_for_update(str(order_id))
        if order is None:
            raise Order.DoesNotExist(f"Order {order_id} not found.")
        return order

    def _still_at(self, order: Order, step: str, status: str) -> bool:
        return order.next_step == step and order.status == status

    def _move_step(self, order: Order, expected: str, new_step: str) -> None:
        with transaction.atomic():
            locked = self._lock(order.id)
            if locked.next_step == expected and locked.status == OrderStatus.INVENTORY_CHECKED:
                locked.next_step = new_step
                self._orders.save(locked)

    def _set_status(
        self, order: Order, new_status: str, notes: str, changed_by: str = SYSTEM_ACTOR
    ) -> None:
        """Validate and apply a transition on a locked order (caller saves)."""
        if not order.can_transition_to(new_status):
            raise InvalidOrderStatus(
                f"Cannot transition from {order.status} to {new_status}."
            )
        old_status = order.status
        order.status = new_status
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                data={"old_status": old_status, "new_status": new_status},
            )
        )
        self._orders.add_history(
            order_id=order.id,
            status=new_status,
            notes=notes,
            old_status=old_status,
            changed_by=changed_by,
        )
        logger.info(
            "order.status_updated",
            order_id=str(order.id),
            old_status=old_status,
            new_status=new_status,
        )
