from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction

from modules.orders.models import Order
from modules.payments.constants import (
    FINAL_STATES,
    OPEN_STATES,
    VALID_TRANSITIONS,
    PaymentMethodType,
    PaymentStatus,
)
from modules.payments.exceptions import ImmutablePaymentMethod
from modules.payments.models import Payment, PaymentMethod

pytestmark = pytest.mark.unit


class TestPaymentMethod:
    def test_stored_method_is_immutable(self, card_method):
        card_method.label = "renamed"
        with pytest.raises(ImmutablePaymentMethod):
            card_method.save()

    def test_one_default_per_customer(self, card_method, make_method):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                make_method(PaymentMethodType.WALLET, is_default=True)

    def test_synchronous_methods(self, make_method):
        assert make_method(PaymentMethodType.CARD).is_synchronous
        assert make_method(PaymentMethodType.WALLET).is_synchronous
        assert not make_method(PaymentMethodType.BANK_TRANSFER).is_synchronous


class TestPayment:
    @pytest.fixture()
    def order(self, customer):
        return Order.objects.create(customer=customer, total_amount=Decimal("10.00"))

    def test_one_open_payment_per_order(self, order):
        Payment.objects.create(order=order, amount=Decimal("10.00"))
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Payment.objects.create(order=order, amount=Decimal("10.00"))

    def test_closed_payments_do_not_block_a_new_attempt(self, order):
        Payment.objects.create(
            order=order, amount=Decimal("10.00"), status=PaymentStatus.FAILED
        )
        Payment.objects.create(
            order=order, amount=Decimal("10.00"), status=PaymentStatus.SUPERSEDED
        )
        Payment.objects.create(order=order, amount=Decimal("10.00"))

        assert Payment.objects.filter(order=order).count() == 3

    def test_final_states_have_no_way_back(self):
        for status in FINAL_STATES - {PaymentStatus.COMPLETED}:
            assert VALID_TRANSITIONS[status] == set()
        assert VALID_TRANSITIONS[PaymentStatus.COMPLETED] == {PaymentStatus.REFUNDED}

    def test_only_open_states_can_be_superseded(self):
        for status in PaymentStatus.values:
            can = PaymentStatus.SUPERSEDED in VALID_TRANSITIONS[status]
            expected = status in OPEN_STATES and status != PaymentStatus.PROCESSING
            assert can == expected

    def test_processing_can_release_its_claim(self):
        payment = Payment(status=PaymentStatus.PROCESSING)
        assert payment.can_transition_to(PaymentStatus.PENDING)
        assert not payment.is_final
