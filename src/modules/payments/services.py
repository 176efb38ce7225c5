"""Payment state machine and payment use cases.

``PaymentProcessor`` drives a payment from ``PENDING`` to a final state:

1. Claim ``PENDING -> PROCESSING`` under a row lock.  Any other status is
   a no-op, so a redelivered or concurrent job never captures twice.
2. Resolve the payment method (explicit, else the customer's default).
3. Capture through the gateway registered for the method type, outside
   any database transaction, with the payment id as idempotency key.
4. Card and wallet captures are verified and completed immediately; bank
   transfers (and other asynchronous methods) wait in
   ``PENDING_CONFIRMATION`` for the ``payments.confirm`` job.
5. Completion notifies the customer, issues the invoice and schedules
   ``orders.advance``.  Failure notifies the customer and payment
   operations and also schedules ``orders.advance``, which moves a waiting
   order to ``ERROR``.

Every write after the claim is conditional on the status the processor
expects, so the stale-payment sweep and a late gateway answer cannot both
win.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.notifications.router import NotificationRouter
from modules.orders.constants import OrderStatus
from modules.payments.constants import InvoiceStatus, PaymentStatus, TransactionType
from modules.payments.exceptions import (
    ExternalServiceError,
    GatewayTimeout,
    InvalidPaymentStatus,
    PaymentFailed,
    PaymentInProgress,
    PaymentMethodNotFound,
    PaymentNotFound,
    PaymentVerificationFailed,
)
from modules.payments.formatting import format_amount
from modules.payments.gateway import PaymentGateway, get_gateway
from modules.payments.models import Invoice, Payment, PaymentMethod
from modules.payments.repositories import IPaymentRepository, PaymentDjangoRepository
from shared.domain.failures import FailureKind, classify_failure
from shared.domain.scheduler import IJobScheduler, JobType
from shared.infrastructure.scheduler import CeleryJobScheduler

logger = structlog.get_logger(__name__)

GatewayResolver = Callable[[str], PaymentGateway]

METHOD_LABELS = {
    "card": "Credit card",
    "wallet": "Wallet",
    "bank_transfer": "Bank transfer",
}


class PaymentProcessor:
    """Runs the ``payments.process``, ``payments.confirm`` and
    ``payments.fail_stale`` jobs."""

    def __init__(
        self,
        payment_repository: Optional[IPaymentRepository] = None,
        scheduler: Optional[IJobScheduler] = None,
        router: Optional[NotificationRouter] = None,
        gateway_resolver: GatewayResolver = get_gateway,
    ) -> None:
        self._repo = payment_repository or PaymentDjangoRepository()
        self._scheduler = scheduler or CeleryJobScheduler()
        self._router = router or NotificationRouter()
        self._gateway_for = gateway_resolver

    # ------------------------------------------------------------------
    # payments.process
    # ------------------------------------------------------------------

    def process_payment(self, payment_id: Any, retryable: bool = False) -> Optional[Payment]:
        """Capture a ``PENDING`` payment.

        With ``retryable=True`` an unreachable gateway releases the claim
        (back to ``PENDING``) and re-raises ``ExternalServiceError`` so the
        caller can retry; otherwise the payment fails.  Every other error is
        recorded on the payment and not raised.
        """
        log = logger.bind(payment_id=str(payment_id))

        with transaction.atomic():
            payment = self._repo.get_for_update(str(payment_id))
            if payment is None:
                log.warning("payment.not_found")
                return None
            if payment.status != PaymentStatus.PENDING:
                log.info("payment.process_skipped", status=payment.status)
                return payment
            payment.status = PaymentStatus.PROCESSING
            self._repo.save(payment)
            self._repo.add_transaction(
                payment,
                TransactionType.STATUS_UPDATE,
                PaymentStatus.PROCESSING,
                notes="Payment processing started",
            )

        log.info("payment.processing_started")
        try:
            self._dispatch(payment)
        except ExternalServiceError as exc:
            if retryable:
                self._release_claim(payment, exc)
                raise
            self._fail(payment, _degrade(exc))
        except Exception as exc:
            self._fail(payment, exc)
        return payment

    def _dispatch(self, payment: Payment) -> None:
        method = self._resolve_method(payment)
        gateway = self._gateway_for(method.method_type)

        result = gateway.capture(
            amount=payment.amount,
            currency=payment.currency,
            credentials=method.credentials,
            idempotency_key=str(payment.id),
        )
        self._repo.add_transaction(
            payment,
            TransactionType.CAPTURE,
            result.gateway_status or ("succeeded" if result.success else "failed"),
            reference=result.transaction_id or "",
            response=result.response,
        )
        if not result.success:
            label = METHOD_LABELS.get(method.method_type, "Payment")
            raise PaymentFailed(
                f"{label} payment failed: {result.failure_reason or 'rejected by gateway'}",
                details={"gateway_status": result.gateway_status},
            )

        self._repo.update_if_status(
            payment,
            [PaymentStatus.PROCESSING],
            transaction_id=result.transaction_id or "",
            processed_at=timezone.now(),
        )

        if result.pending or not method.is_synchronous:
            self._await_confirmation(payment)
            return

        self._verify(payment, gateway)
        self._complete(payment, "Payment processing completed")

    def _resolve_method(self, payment: Payment) -> PaymentMethod:
        if payment.payment_method_id:
            method = self._repo.get_method(payment.payment_method_id)
        else:
            method = self._repo.default_method_for(payment.order.customer_id)
            if method is not None:
                self._repo.update_if_status(
                    payment, [PaymentStatus.PROCESSING], payment_method=method
                )
        if method is None:
            raise PaymentMethodNotFound(
                f"Payment method not found for payment {payment.id}"
            )
        return method

    def _verify(self, payment: Payment, gateway: PaymentGateway) -> None:
        verification = gateway.verify(payment.transaction_id)
        self._repo.add_transaction(
            payment,
            TransactionType.VERIFICATION,
            "verified" if verification.verified else "unverified",
            reference=payment.transaction_id,
        )
        if not verification.verified:
            raise PaymentVerificationFailed(
                "Payment verification failed: "
                f"{verification.failure_reason or 'capture not corroborated'}",
                details={"transaction_id": payment.transaction_id},
            )

    def _await_confirmation(self, payment: Payment) -> None:
        moved = self._transition(
            payment,
            PaymentStatus.PENDING_CONFIRMATION,
            "Awaiting payment confirmation",
            expected=[PaymentStatus.PROCESSING],
        )
        if moved is None:
            return
        self._scheduler.schedule(
            JobType.CONFIRM_PAYMENT,
            {"payment_id": str(payment.id)},
            delay=settings.PAYMENT_CONFIRMATION_DELAY,
        )
        logger.info(
            "payment.awaiting_confirmation",
            payment_id=str(payment.id),
            transaction_id=payment.transaction_id,
        )

    # ------------------------------------------------------------------
    # payments.confirm
    # ------------------------------------------------------------------

    def confirm_payment(self, payment_id: Any, retryable: bool = False) -> Optional[Payment]:
        """Resolve a ``PENDING_CONFIRMATION`` payment with the gateway.

        Not yet settled: check again after ``PAYMENT_CONFIRMATION_DELAY``
        until ``PAYMENT_CONFIRMATION_MAX_CHECKS`` checks have been made.
        """
        log = logger.bind(payment_id=str(payment_id))
        payment = self._repo.get_by_id(str(payment_id))
        if payment is None:
            log.warning("payment.not_found")
            return None
        if payment.status != PaymentStatus.PENDING_CONFIRMATION:
            log.info("payment.confirm_skipped", status=payment.status)
            return payment

        try:
            method = self._resolve_method(payment)
            gateway = self._gateway_for(method.method_type)
            verification = gateway.verify(payment.transaction_id)
            self._repo.add_transaction(
                payment,
                TransactionType.VERIFICATION,
                "verified" if verification.verified else (
                    "pending" if verification.pending else "rejected"
                ),
                reference=payment.transaction_id,
            )

            if verification.verified:
                self._complete(payment, "Payment confirmed")
            elif verification.pending:
                self._reschedule_confirmation(payment)
            else:
                raise PaymentVerificationFailed(
                    "Payment verification failed: "
                    f"{verification.failure_reason or 'transfer rejected'}",
                    details={"transaction_id": payment.transaction_id},
                )
        except ExternalServiceError as exc:
            if retryable:
                raise
            self._fail(payment, _degrade(exc))
        except Exception as exc:
            self._fail(payment, exc)
        return payment

    def _reschedule_confirmation(self, payment: Payment) -> None:
        checks = self._repo.increment_confirmation_checks(payment)
        max_checks = settings.PAYMENT_CONFIRMATION_MAX_CHECKS
        if checks >= max_checks:
            raise PaymentFailed(
                f"Payment not confirmed after {checks} checks",
                details={"transaction_id": payment.transaction_id},
            )
        self._scheduler.schedule(
            JobType.CONFIRM_PAYMENT,
            {"payment_id": str(payment.id)},
            delay=settings.PAYMENT_CONFIRMATION_DELAY,
        )
        logger.info(
            "payment.confirmation_rescheduled",
            payment_id=str(payment.id),
            checks=checks,
            max_checks=max_checks,
        )

    # ------------------------------------------------------------------
    # payments.fail_stale
    # ------------------------------------------------------------------

    def fail_stale_payments(self) -> int:
        """Fail payments left in ``PROCESSING`` past the processing timeout."""
        timeout = settings.PAYMENT_PROCESSING_TIMEOUT
        cutoff = timezone.now() - timedelta(seconds=timeout)
        failed = 0
        for payment in self._repo.stale_processing(cutoff):
            if self._fail(
                payment,
                GatewayTimeout(f"Payment processing exceeded {timeout} seconds"),
                expected=[PaymentStatus.PROCESSING],
            ):
                failed += 1
        if failed:
            logger.warning("payment.stale_failed", count=failed, timeout=timeout)
        return failed

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _complete(self, payment: Payment, notes: str) -> Optional[Payment]:
        completed = self._transition(
            payment,
            PaymentStatus.COMPLETED,
            notes,
            expected=[PaymentStatus.PROCESSING, PaymentStatus.PENDING_CONFIRMATION],
            verified_at=timezone.now(),
        )
        if completed is None:
            return None

        order = completed.order
        logger.info(
            "payment.completed",
            payment_id=str(completed.id),
            order_id=str(order.id),
            amount=str(completed.amount),
            currency=completed.currency,
        )
        self._router.notify_payment_completed(
            completed, order, format_amount(completed.amount, completed.currency)
        )
        self._issue_invoice(completed, order)
        self._scheduler.schedule(
            JobType.UPDATE_ANALYTICS,
            {
                "event": "payment_completed",
                "payment_id": str(completed.id),
                "order_id": str(order.id),
                "customer_id": str(order.customer_id),
                "amount": str(completed.amount),
                "currency": completed.currency,
            },
        )
        self._scheduler.schedule(JobType.ADVANCE_ORDER, {"order_id": str(order.id)})
        return completed

    def _fail(
        self,
        payment: Payment,
        exc: BaseException,
        expected: Iterable[str] = (
            PaymentStatus.PROCESSING,
            PaymentStatus.PENDING_CONFIRMATION,
        ),
    ) -> bool:
        kind = classify_failure(exc)
        message = str(exc) or exc.__class__.__name__
        log = logger.bind(payment_id=str(payment.id), failure_kind=kind.value)
        if kind == FailureKind.UNKNOWN:
            log.error("payment.failed", error=message, exc_info=exc)
        else:
            log.warning("payment.failed", error=message)

        failed = self._transition(
            payment,
            PaymentStatus.FAILED,
            f"Error: {message}",
            expected=list(expected),
            failure_kind=kind.value,
            failure_reason=message,
        )
        if failed is None:
            return False
        self._router.notify_payment_failure(
            failed, failed.order, kind, message, details=getattr(exc, "details", None)
        )
        self._scheduler.schedule(JobType.ADVANCE_ORDER, {"order_id": str(failed.order_id)})
        return True

    def _release_claim(self, payment: Payment, exc: ExternalServiceError) -> None:
        logger.warning(
            "payment.gateway_unavailable",
            payment_id=str(payment.id),
            error=str(exc),
        )
        self._transition(
            payment,
            PaymentStatus.PENDING,
            f"Gateway unavailable, retry scheduled: {exc}",
            expected=[PaymentStatus.PROCESSING],
        )

    def _transition(
        self,
        payment: Payment,
        new_status: str,
        notes: str,
        expected: Iterable[str],
        **fields: Any,
    ) -> Optional[Payment]:
        """Move *payment* to *new_status* if it is still in *expected*.

        Returns the locked, updated row, or ``None`` when another job has
        already moved the payment elsewhere.
        """
        with transaction.atomic():
            current = self._repo.get_for_update(str(payment.id))
            if current is None or current.status not in set(expected):
                logger.info(
                    "payment.transition_skipped",
                    payment_id=str(payment.id),
                    status=getattr(current, "status", None),
                    target=new_status,
                )
                return None
            if not current.can_transition_to(new_status):
                raise InvalidPaymentStatus(
                    f"Cannot transition payment from {current.status} to {new_status}."
                )
            current.status = new_status
            for name, value in fields.items():
                setattr(current, name, value)
            self._repo.save(current)
            self._repo.add_transaction(
                current, TransactionType.STATUS_UPDATE, new_status, notes=notes
            )

        payment.status = current.status
        for name, value in fields.items():
            setattr(payment, name, value)
        return current

    def _issue_invoice(self, payment: Payment, order: Any) -> Invoice:
        """Create the order's invoice unless it already has one."""
        existing = Invoice.objects.filter(order_id=order.id).first()
        if existing is not None:
            return existing
        try:
            with transaction.atomic():
                invoice = Invoice.objects.create(
                    order_id=order.id,
                    payment=payment,
                    invoice_number=f"INV-{order.order_number}",
                    total=order.total_amount,
                    currency=payment.currency,
                    issued_at=timezone.now(),
                )
        except IntegrityError:
            return Invoice.objects.get(order_id=order.id)
        logger.info(
            "invoice.issued",
            invoice_number=invoice.invoice_number,
            order_id=str(order.id),
        )
        return invoice


def _degrade(exc: ExternalServiceError) -> PaymentFailed:
    """Out of retries: an unreachable gateway becomes a payment failure."""
    return PaymentFailed(f"Payment gateway unavailable: {exc}", details=exc.details)


class PaymentService:
    """Payment use cases invoked outside the saga jobs (checkout, support)."""

    def __init__(
        self,
        payment_repository: Optional[IPaymentRepository] = None,
        scheduler: Optional[IJobScheduler] = None,
        gateway_resolver: GatewayResolver = get_gateway,
    ) -> None:
        self._repo = payment_repository or PaymentDjangoRepository()
        self._scheduler = scheduler or CeleryJobScheduler()
        self._gateway_for = gateway_resolver

    @transaction.atomic
    def initiate_payment(
        self, order: Any, payment_method: Optional[PaymentMethod] = None
    ) -> Payment:
        """Open a new ``PENDING`` payment for the order total.

        A previous ``PENDING``/``PENDING_CONFIRMATION`` attempt is
        superseded.  An order already waiting for payment is advanced so it
        picks up the new attempt.

        Raises:
            PaymentInProgress: an attempt is being captured right now.
        """
        log = logger.bind(order_id=str(order.id))
        self.supersede_open_payments(order, "Superseded by a new payment attempt")

        payment = Payment(
            order=order,
            amount=order.total_amount,
            currency=order.currency,
            payment_method=payment_method,
        )
        try:
            with transaction.atomic():
                self._repo.save(payment)
        except IntegrityError as exc:
            raise PaymentInProgress(
                f"Order {order.id} already has an open payment."
            ) from exc
        self._repo.add_transaction(
            payment,
            TransactionType.STATUS_UPDATE,
            PaymentStatus.PENDING,
            notes="Payment initiated",
        )
        log.info("payment.initiated", payment_id=str(payment.id), amount=str(payment.amount))

        if order.status == OrderStatus.INVENTORY_CHECKED:
            self._scheduler.schedule(JobType.ADVANCE_ORDER, {"order_id": str(order.id)})
        return payment

    @transaction.atomic
    def supersede_open_payments(self, order: Any, notes: str) -> int:
        """Retire the order's open payment attempts; returns how many.

        Raises:
            PaymentInProgress: an attempt is being captured right now.
        """
        open_payments = self._repo.open_for_order_for_update(order.id)
        if any(p.status == PaymentStatus.PROCESSING for p in open_payments):
            logger.warning("payment.supersede_refused", order_id=str(order.id))
            raise PaymentInProgress(f"Order {order.id} has a payment being processed.")

        for previous in open_payments:
            previous.status = PaymentStatus.SUPERSEDED
            self._repo.save(previous)
            self._repo.add_transaction(
                previous,
                TransactionType.STATUS_UPDATE,
                PaymentStatus.SUPERSEDED,
                notes=notes,
            )
            logger.info(
                "payment.superseded",
                payment_id=str(previous.id),
                order_id=str(order.id),
            )
        return len(open_payments)

    def refund_payment(
        self,
        payment_id: Any,
        reason: str = "Customer requested refund",
        amount: Optional[Decimal] = None,
    ) -> Payment:
        """Refund a ``COMPLETED`` payment and void its invoice.

        The gateway call and its audit row happen outside any transaction,
        so a refused refund stays on record.

        Raises:
            PaymentNotFound: payment does not exist.
            InvalidPaymentStatus: payment is not ``COMPLETED``.
            PaymentFailed: the gateway refused the refund.
        """
        payment = self._repo.get_by_id(str(payment_id))
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} not found.")
        if not payment.can_transition_to(PaymentStatus.REFUNDED):
            raise InvalidPaymentStatus(f"Cannot refund payment in status {payment.status}.")

        amount = amount if amount is not None else payment.amount
        method = payment.payment_method
        gateway = self._gateway_for(method.method_type if method else "other")
        result = gateway.refund(payment.transaction_id, amount, reason)
        self._repo.add_transaction(
            payment,
            TransactionType.REFUND,
            "succeeded" if result.success else "failed",
            notes=reason,
            reference=result.refund_id or "",
        )
        if not result.success:
            logger.warning(
                "payment.refund_refused",
                payment_id=str(payment.id),
                reason=result.failure_reason,
            )
            raise PaymentFailed(f"Refund failed: {result.failure_reason}")

        with transaction.atomic():
            payment = self._repo.get_for_update(str(payment.id))
            if not payment.can_transition_to(PaymentStatus.REFUNDED):
                raise InvalidPaymentStatus(
                    f"Cannot refund payment in status {payment.status}."
                )
            payment.status = PaymentStatus.REFUNDED
            self._repo.save(payment)
            Invoice.objects.filter(payment=payment).update(
                status=InvoiceStatus.VOID, updated_at=timezone.now()
            )
        logger.info("payment.refunded", payment_id=str(payment.id), amount=str(amount))
        return payment
