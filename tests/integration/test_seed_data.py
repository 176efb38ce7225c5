from io import StringIO

import pytest
from django.core.management import call_command

from modules.customers.models import Cart, Customer
from modules.inventory.models import InventoryRecord, Warehouse
from modules.payments.models import PaymentMethod
from modules.products.models import Product, ProductVariant

pytestmark = pytest.mark.integration


def _seed() -> str:
    out = StringIO()
    call_command("seed_data", stdout=out)
    return out.getvalue()


def test_seed_creates_demo_data():
    output = _seed()

    assert Warehouse.objects.count() == 2
    assert Product.objects.count() == 8
    assert ProductVariant.objects.count() == 2
    # 7 plain products + 2 chair variants, each stocked in both warehouses
    assert InventoryRecord.objects.count() == 18
    assert Customer.objects.count() == 4
    assert PaymentMethod.objects.filter(is_default=True).count() == 4
    assert Cart.objects.count() == 4
    assert "Seed completed" in output


def test_seed_is_rerunnable():
    _seed()
    output = _seed()

    assert InventoryRecord.objects.count() == 18
    assert PaymentMethod.objects.count() == 4
    assert "inventory_records=0" in output
    assert "payment_methods=0" in output
    assert "carts=0" in output
