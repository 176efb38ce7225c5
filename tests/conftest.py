from __future__ import annotations

from decimal import Decimal
from typing import Optional

import pytest

from modules.customers.models import Customer
from modules.inventory.models import InventoryRecord, Warehouse
from modules.notifications.delivery import get_delivery, reset_delivery
from modules.notifications.router import NotificationRouter
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.processor import OrderProcessor
from modules.orders.services import OrderService
from modules.payments.constants import PaymentMethodType
from modules.payments.gateway import get_gateway, reset_gateways
from modules.payments.models import PaymentMethod
from modules.products.models import Product, ProductStatus
from shared.infrastructure.scheduler import InMemoryJobScheduler


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _fresh_adapters():
    """Every test starts with untouched fake gateways and an empty outbox."""
    reset_gateways()
    reset_delivery()
    yield
    reset_gateways()
    reset_delivery()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture()
def delivery():
    return get_delivery()


@pytest.fixture()
def router(delivery):
    return NotificationRouter(delivery)


@pytest.fixture()
def scheduler():
    return InMemoryJobScheduler()


@pytest.fixture()
def card_gateway():
    return get_gateway(PaymentMethodType.CARD)


@pytest.fixture()
def wallet_gateway():
    return get_gateway(PaymentMethodType.WALLET)


@pytest.fixture()
def bank_gateway():
    return get_gateway(PaymentMethodType.BANK_TRANSFER)


@pytest.fixture()
def processor(scheduler, router):
    return OrderProcessor(scheduler=scheduler, router=router)


@pytest.fixture()
def order_service(scheduler):
    return OrderService(scheduler=scheduler)


# ---------------------------------------------------------------------------
# Catalog, stock and customers
# ---------------------------------------------------------------------------


@pytest.fixture()
def warehouse():
    return Warehouse.objects.create(code="MAIN", name="Main warehouse", priority=0)


@pytest.fixture()
def make_product():
    def _make(sku: str, price: str = "10.00", **extra) -> Product:
        extra.setdefault("status", ProductStatus.ACTIVE)
        return Product.objects.create(
            sku=sku, name=f"Product {sku}", price=Decimal(price), **extra
        )

    return _make


@pytest.fixture()
def stock(warehouse):
    def _stock(
        product: Product,
        quantity: int,
        threshold: int = 5,
        variant=None,
        location: Optional[Warehouse] = None,
    ) -> InventoryRecord:
        return InventoryRecord.objects.create(
            product=product,
            variant=variant,
            warehouse=location or warehouse,
            quantity=quantity,
            reorder_threshold=threshold,
        )

    return _stock


@pytest.fixture()
def customer():
    return Customer.objects.create(name="Jane Doe", email="jane@example.com")


@pytest.fixture()
def make_method(customer):
    def _make(
        method_type: str = PaymentMethodType.CARD,
        is_default: bool = False,
        owner: Optional[Customer] = None,
    ) -> PaymentMethod:
        return PaymentMethod.objects.create(
            customer=owner or customer,
            method_type=method_type,
            provider="fake",
            credentials={"token": f"tok_{method_type}"},
            label=f"{method_type} on file",
            is_default=is_default,
        )

    return _make


@pytest.fixture()
def card_method(make_method):
    return make_method(PaymentMethodType.CARD, is_default=True)


@pytest.fixture()
def place_order(order_service, customer):
    """Place an order for ``customer`` from ``(product, quantity)`` pairs."""

    def _place(*lines, payment_method=None, idempotency_key=None, currency="USD"):
        dto = CreateOrderDTO(
            customer_id=customer.id,
            items=[
                CreateOrderItemDTO(product_id=product.id, quantity=quantity)
                for product, quantity in lines
            ],
            currency=currency,
            payment_method_id=payment_method.id if payment_method else None,
            idempotency_key=idempotency_key,
        )
        return order_service.place_order(dto)

    return _place
