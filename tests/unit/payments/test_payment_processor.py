"""PaymentProcessor: claim, capture, verification, confirmation, failure."""

from __future__ import annotations

import pytest

from modules.notifications.constants import NotificationType, Role
from modules.payments.constants import PaymentMethodType, PaymentStatus, TransactionType
from modules.payments.exceptions import (
    ExternalServiceError,
    PaymentFailed,
    PaymentMethodNotFound,
    PaymentVerificationFailed,
    failure_from_payment,
)
from modules.payments.gateway.fake import FakeCardGateway
from modules.payments.models import Payment, PaymentTransaction
from modules.payments.services import PaymentProcessor
from shared.domain.failures import FailureKind, classify_failure
from shared.domain.scheduler import JobType

pytestmark = pytest.mark.unit


@pytest.fixture()
def payment_processor(scheduler, router):
    return PaymentProcessor(scheduler=scheduler, router=router)


@pytest.fixture()
def open_payment(place_order, make_product):
    def _open(**kwargs):
        order = place_order((make_product(f"PAY-{Payment.objects.count()}", "42.00"), 1), **kwargs)
        return Payment.objects.get(order=order)

    return _open


class TestProcessPayment:
    def test_card_payment_completes(self, payment_processor, open_payment, card_method):
        payment = open_payment()

        result = payment_processor.process_payment(payment.id)

        assert result.status == PaymentStatus.COMPLETED
        payment.refresh_from_db()
        assert payment.payment_method_id == card_method.id
        assert payment.processed_at is not None
        assert payment.verified_at is not None

    def test_audit_trail(self, payment_processor, open_payment, card_method):
        payment = open_payment()

        payment_processor.process_payment(payment.id)

        trail = list(
            PaymentTransaction.objects.filter(payment=payment)
            .order_by("created_at")
            .values_list("transaction_type", "status")
        )
        assert trail == [
            (TransactionType.STATUS_UPDATE, PaymentStatus.PENDING),
            (TransactionType.STATUS_UPDATE, PaymentStatus.PROCESSING),
            (TransactionType.CAPTURE, "succeeded"),
            (TransactionType.VERIFICATION, "verified"),
            (TransactionType.STATUS_UPDATE, PaymentStatus.COMPLETED),
        ]

    def test_completion_schedules_order_advance(
        self, payment_processor, open_payment, card_method, scheduler
    ):
        payment = open_payment()
        scheduler.clear()

        payment_processor.process_payment(payment.id)

        assert [j.payload for j in scheduler.of_type(JobType.ADVANCE_ORDER)] == [
            {"order_id": str(payment.order_id)}
        ]
        (analytics,) = scheduler.of_type(JobType.UPDATE_ANALYTICS)
        assert analytics.payload["event"] == "payment_completed"
        assert analytics.payload["amount"] == "42.00"

    def test_non_pending_payment_is_skipped(
        self, payment_processor, open_payment, card_method, card_gateway
    ):
        payment = open_payment()
        Payment.objects.filter(pk=payment.pk).update(status=PaymentStatus.PROCESSING)

        result = payment_processor.process_payment(payment.id)

        assert result.status == PaymentStatus.PROCESSING
        assert card_gateway.captures() == []

    def test_unknown_payment(self, payment_processor):
        assert payment_processor.process_payment("01900000-0000-7000-8000-000000000000") is None

    def test_decline_hands_the_order_back_to_the_saga(
        self, payment_processor, open_payment, card_method, card_gateway, scheduler
    ):
        payment = open_payment()
        scheduler.clear()
        card_gateway.configure(should_succeed=False)

        result = payment_processor.process_payment(payment.id)

        assert result.status == PaymentStatus.FAILED
        assert [j.payload for j in scheduler.of_type(JobType.ADVANCE_ORDER)] == [
            {"order_id": str(payment.order_id)}
        ]
        assert scheduler.of_type(JobType.UPDATE_ANALYTICS) == []

    def test_wallet_rejection_label(
        self, payment_processor, open_payment, make_method, wallet_gateway
    ):
        make_method(PaymentMethodType.WALLET, is_default=True)
        payment = open_payment()
        wallet_gateway.configure(should_succeed=False)

        payment_processor.process_payment(payment.id)

        payment.refresh_from_db()
        assert payment.failure_reason == "Wallet payment failed: Payment rejected"

    def test_failed_verification(
        self, payment_processor, open_payment, card_method, card_gateway, delivery
    ):
        payment = open_payment()
        card_gateway.configure(verify_outcome="rejected")

        payment_processor.process_payment(payment.id)

        payment.refresh_from_db()
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_kind == "payment_verification_failed"
        assert delivery.to(Role.SYSTEM_ADMIN) == []

    def test_unexpected_error_reaches_system_operations(
        self, scheduler, router, open_payment, card_method, delivery
    ):
        class ExplodingGateway(FakeCardGateway):
            def capture(self, *args, **kwargs):
                raise KeyError("credentials")

        processor = PaymentProcessor(
            scheduler=scheduler,
            router=router,
            gateway_resolver=lambda method_type: ExplodingGateway(),
        )
        payment = open_payment()

        processor.process_payment(payment.id)

        payment.refresh_from_db()
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_kind == "unknown"
        assert len(delivery.to(Role.PAYMENT_ADMIN)) == 1
        assert len(delivery.to(Role.SYSTEM_ADMIN)) == 1


class TestConfirmPayment:
    @pytest.fixture()
    def waiting_payment(self, payment_processor, open_payment, make_method):
        make_method(PaymentMethodType.BANK_TRANSFER, is_default=True)
        payment = open_payment()
        payment_processor.process_payment(payment.id)
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.PENDING_CONFIRMATION
        return payment

    def test_verified_transfer_completes(
        self, payment_processor, waiting_payment, delivery
    ):
        result = payment_processor.confirm_payment(waiting_payment.id)

        assert result.status == PaymentStatus.COMPLETED
        assert len(delivery.of_type(NotificationType.PAYMENT_COMPLETED)) == 1

    def test_gives_up_after_max_checks(
        self, payment_processor, waiting_payment, bank_gateway, scheduler, settings
    ):
        settings.PAYMENT_CONFIRMATION_MAX_CHECKS = 3
        bank_gateway.configure(verify_outcome="pending")
        scheduler.clear()

        for _ in range(3):
            payment_processor.confirm_payment(waiting_payment.id)

        waiting_payment.refresh_from_db()
        assert waiting_payment.status == PaymentStatus.FAILED
        assert waiting_payment.confirmation_checks == 3
        assert waiting_payment.failure_reason == "Payment not confirmed after 3 checks"
        assert len(scheduler.of_type(JobType.CONFIRM_PAYMENT)) == 2

    def test_confirm_on_other_status_is_skipped(
        self, payment_processor, open_payment, card_method, card_gateway
    ):
        payment = open_payment()

        result = payment_processor.confirm_payment(payment.id)

        assert result.status == PaymentStatus.PENDING
        assert card_gateway.calls == []

    def test_unreachable_gateway_on_last_attempt_fails(
        self, payment_processor, waiting_payment, bank_gateway
    ):
        bank_gateway.configure(unavailable=True)

        payment_processor.confirm_payment(waiting_payment.id, retryable=False)

        waiting_payment.refresh_from_db()
        assert waiting_payment.status == PaymentStatus.FAILED
        assert waiting_payment.failure_kind == "payment_failed"


class TestFailureFromPayment:
    @pytest.mark.parametrize(
        "kind,error_class",
        [
            ("payment_failed", PaymentFailed),
            ("payment_verification_failed", PaymentVerificationFailed),
            ("payment_method_not_found", PaymentMethodNotFound),
            ("external_service", ExternalServiceError),
        ],
    )
    def test_recorded_kind_is_preserved(self, kind, error_class):
        payment = Payment(
            status=PaymentStatus.FAILED,
            failure_kind=kind,
            failure_reason="Card declined",
            transaction_id="ch_1",
        )

        error = failure_from_payment(payment)

        assert type(error) is error_class
        assert classify_failure(error) == FailureKind(kind)
        assert str(error) == "Card declined"
        assert error.details == {"payment_id": str(payment.id), "transaction_id": "ch_1"}

    def test_unrecorded_kind_is_unknown(self):
        payment = Payment(status=PaymentStatus.FAILED)

        error = failure_from_payment(payment)

        assert classify_failure(error) == FailureKind.UNKNOWN
        assert str(error) == "Payment failed"
