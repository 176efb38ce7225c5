"""Order service layer (Use Cases).

Orchestrates checkout and administrative cancellation.  Both commands are
atomic: the service defines the unit-of-work boundary and every job it
schedules is enqueued only after commit.

Business rules enforced:
- The customer must exist and be active.
- Every product (and variant) must exist and be active.
- An explicit payment method must belong to the customer.
- Unit prices are snapshotted at checkout and never recomputed.
- Cancellation releases each reserved line exactly once.
- Status transitions are validated against the order state machine and
  recorded in the order history.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.customers.models import Customer
from modules.inventory.services import InventoryLedger, StockReference
from modules.orders.constants import OrderStatus, SagaStep
from modules.orders.events import OrderCancelled, OrderCreated, OrderStatusChanged
from modules.orders.exceptions import (
    CustomerNotFound,
    InactiveCustomer,
    InactiveProduct,
    InvalidOrderStatus,
    OrderNotFound,
    ProductNotFound,
)
from modules.orders.repositories import OrderDjangoRepository
from modules.payments.exceptions import PaymentMethodNotFound
from modules.payments.models import PaymentMethod
from modules.payments.services import PaymentService
from modules.products.models import Product, ProductVariant
from shared.domain.scheduler import IJobScheduler, JobType
from shared.infrastructure.scheduler import CeleryJobScheduler

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives its collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: Optional[IOrderRepository] = None,
        payment_service: Optional[PaymentService] = None,
        ledger: Optional[InventoryLedger] = None,
        scheduler: Optional[IJobScheduler] = None,
    ) -> None:
        self._order_repo = order_repository or OrderDjangoRepository()
        self._scheduler = scheduler or CeleryJobScheduler()
        self._payment_service = payment_service or PaymentService(
            scheduler=self._scheduler
        )
        self._ledger = ledger or InventoryLedger(scheduler=self._scheduler)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def place_order(self, dto: CreateOrderDTO) -> Order:
        """Create an order, open its payment and start the saga.

        Steps:
        1. Return the existing order when the idempotency key was seen.
        2. Validate the customer, the products and the payment method.
        3. Persist order + items (price snapshots) atomically.
        4. Record ``OrderCreated`` and the initial history row.
        5. Open a ``PENDING`` payment and schedule ``orders.advance``.

        Raises:
            CustomerNotFound: customer does not exist.
            InactiveCustomer: customer is inactive.
            ProductNotFound: a product or variant does not exist.
            InactiveProduct: a product or variant is inactive.
            PaymentMethodNotFound: the payment method is not the customer's.
        """
        log = logger.bind(customer_id=str(dto.customer_id))
        log.info("order.placement_started", item_count=len(dto.items))

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return existing

        customer = Customer.objects.filter(id=dto.customer_id).first()
        if customer is None:
            raise CustomerNotFound(f"Customer {dto.customer_id} not found.")
        if not customer.is_active:
            raise InactiveCustomer(f"Customer {dto.customer_id} is inactive.")

        payment_method = self._resolve_payment_method(customer, dto.payment_method_id)
        repo_items = [self._snapshot_item(item) for item in dto.items]

        order = self._order_repo.create(
            {
                "customer_id": customer.id,
                "items": repo_items,
                "currency": dto.currency,
                "notes": dto.notes or "",
                "idempotency_key": dto.idempotency_key,
            }
        )
        order.add_domain_event(
            OrderCreated(
                aggregate_id=order.id,
                data={
                    "customer_id": str(customer.id),
                    "total_amount": str(order.total_amount),
                    "currency": order.currency,
                },
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.PENDING,
            notes="Order created",
        )

        self._payment_service.initiate_payment(order, payment_method)
        self._scheduler.schedule(JobType.ADVANCE_ORDER, {"order_id": str(order.id)})

        log.info(
            "order.placed",
            order_id=str(order.id),
            order_number=order.order_number,
            total_amount=str(order.total_amount),
        )
        return self._order_repo.get_by_id(str(order.id)) or order

    @transaction.atomic
    def cancel_order(
        self, order_id: UUID, notes: str = "", changed_by: str = "admin"
    ) -> Order:
        """Cancel an order and return its reserved stock.

        Acquires a row-level lock on the order **first**, so two concurrent
        cancellations serialise; the ledger's ``cancellation`` movements
        make the stock release idempotent on top of that.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: cancellation not allowed from current status.
            PaymentInProgress: the order's payment is being captured.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order_id), current_status=order.status)

        if not order.can_transition_to(OrderStatus.CANCELLED):
            log.warning("order.cancel_not_allowed")
            raise InvalidOrderStatus(f"Cannot cancel order in status {order.status}.")

        self._payment_service.supersede_open_payments(order, "Order cancelled")

        reference = StockReference.for_order(order)
        released: List[Dict[str, Any]] = []
        for movement in self._ledger.movements_for(reference):
            release = self._ledger.release(
                movement.inventory_record, -movement.quantity_delta, reference
            )
            if release is not None:
                released.append(
                    {
                        "inventory_record_id": str(movement.inventory_record_id),
                        "quantity": release.quantity_delta,
                    }
                )

        old_status = order.status
        order.status = OrderStatus.CANCELLED
        order.next_step = SagaStep.DONE
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                data={"old_status": old_status, "new_status": OrderStatus.CANCELLED},
            )
        )
        order.add_domain_event(
            OrderCancelled(aggregate_id=order.id, data={"released_lines": released})
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.CANCELLED,
            notes=notes or "Order cancelled",
            old_status=old_status,
            changed_by=changed_by,
        )

        log.info("order.cancelled", released_lines=len(released))
        return self._order_repo.get_by_id(str(order_id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_payment_method(
        self, customer: Customer, payment_method_id: Optional[UUID]
    ) -> Optional[PaymentMethod]:
        if payment_method_id is None:
            return None
        method = PaymentMethod.objects.filter(
            id=payment_method_id, customer=customer
        ).first()
        if method is None:
            raise PaymentMethodNotFound(
                f"Payment method {payment_method_id} not found for customer "
                f"{customer.id}."
            )
        return method

    def _snapshot_item(self, item: CreateOrderItemDTO) -> Dict[str, Any]:
        product = Product.objects.filter(id=item.product_id).first()
        if product is None:
            raise ProductNotFound(f"Product {item.product_id} not found.")
        if not product.is_active:
            raise InactiveProduct(f"Product {item.product_id} is inactive.")

        unit_price = product.price
        if item.variant_id is not None:
            variant = (
                ProductVariant.objects.select_related("product")
                .filter(id=item.variant_id, product=product)
                .first()
            )
            if variant is None:
                raise ProductNotFound(
                    f"Variant {item.variant_id} of product {item.product_id} not found."
                )
            if not variant.is_active:
                raise InactiveProduct(f"Variant {item.variant_id} is inactive.")
            unit_price = variant.price

        return {
            "product_id": product.id,
            "variant_id": item.variant_id,
            "quantity": item.quantity,
            "unit_price": unit_price,
        }
