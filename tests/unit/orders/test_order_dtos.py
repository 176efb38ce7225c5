from __future__ import annotations

from uuid import uuid4

import pytest
from pydantic import ValidationError

from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO

pytestmark = pytest.mark.unit


def _item(**overrides):
    data = {"product_id": uuid4(), "quantity": 1}
    data.update(overrides)
    return CreateOrderItemDTO(**data)


class TestCreateOrderItemDTO:
    def test_valid_item(self):
        item = _item(quantity=3)
        assert item.quantity == 3
        assert item.variant_id is None

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_must_be_positive(self, quantity):
        with pytest.raises(ValidationError):
            _item(quantity=quantity)

    def test_is_frozen(self):
        item = _item()
        with pytest.raises(ValidationError):
            item.quantity = 5


class TestCreateOrderDTO:
    def test_defaults(self):
        dto = CreateOrderDTO(customer_id=uuid4(), items=[_item()])
        assert dto.currency == "USD"
        assert dto.payment_method_id is None
        assert dto.idempotency_key is None

    def test_items_keep_entry_order(self):
        items = [_item(), _item(), _item()]
        dto = CreateOrderDTO(customer_id=uuid4(), items=items)
        assert [i.product_id for i in dto.items] == [i.product_id for i in items]

    def test_items_must_not_be_empty(self):
        with pytest.raises(ValidationError):
            CreateOrderDTO(customer_id=uuid4(), items=[])

    def test_currency_is_normalised(self):
        dto = CreateOrderDTO(customer_id=uuid4(), items=[_item()], currency=" eur ")
        assert dto.currency == "EUR"

    @pytest.mark.parametrize("currency", ["EURO", "E1R", ""])
    def test_currency_must_be_iso_code(self, currency):
        with pytest.raises(ValidationError):
            CreateOrderDTO(customer_id=uuid4(), items=[_item()], currency=currency)

    def test_duplicate_lines_rejected(self):
        product_id = uuid4()
        with pytest.raises(ValidationError):
            CreateOrderDTO(
                customer_id=uuid4(),
                items=[_item(product_id=product_id), _item(product_id=product_id)],
            )

    def test_same_product_in_different_variants_allowed(self):
        product_id = uuid4()
        dto = CreateOrderDTO(
            customer_id=uuid4(),
            items=[
                _item(product_id=product_id, variant_id=uuid4()),
                _item(product_id=product_id, variant_id=uuid4()),
            ],
        )
        assert len(dto.items) == 2
