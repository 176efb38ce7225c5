"""Payment domain exceptions.

Each failure carries its ``FailureKind`` so the notification router can
tell a declined card from a broken integration without reading messages.
"""

from __future__ import annotations

from typing import Any

from shared.domain.failures import FailureKind, FulfillmentError


class PaymentFailed(FulfillmentError):
    """The gateway declined or rejected the payment."""

    failure_kind = FailureKind.PAYMENT_FAILED


class PaymentVerificationFailed(FulfillmentError):
    """The gateway did not corroborate a captured transaction."""

    failure_kind = FailureKind.PAYMENT_VERIFICATION_FAILED


class PaymentMethodNotFound(FulfillmentError):
    """Neither an explicit nor a default payment method could be resolved."""

    failure_kind = FailureKind.PAYMENT_METHOD_NOT_FOUND


class PaymentNotFound(FulfillmentError):
    """The order (or a job) references a payment that does not exist."""

    failure_kind = FailureKind.PAYMENT_NOT_FOUND


class ExternalServiceError(FulfillmentError):
    """The gateway could not be reached or did not answer in time."""

    failure_kind = FailureKind.EXTERNAL_SERVICE


class GatewayTimeout(ExternalServiceError):
    """The gateway call exceeded ``PAYMENT_GATEWAY_TIMEOUT``."""


class PaymentInProgress(FulfillmentError):
    """A new payment attempt was requested while one is being processed."""


class InvalidPaymentStatus(FulfillmentError):
    """The requested payment transition is not allowed."""


class ImmutablePaymentMethod(Exception):
    """Stored payment methods cannot be edited; create a new one instead."""


_FAILURES_BY_KIND = {
    FailureKind.PAYMENT_FAILED: PaymentFailed,
    FailureKind.PAYMENT_VERIFICATION_FAILED: PaymentVerificationFailed,
    FailureKind.PAYMENT_METHOD_NOT_FOUND: PaymentMethodNotFound,
    FailureKind.PAYMENT_NOT_FOUND: PaymentNotFound,
    FailureKind.EXTERNAL_SERVICE: ExternalServiceError,
}


def failure_from_payment(payment: Any) -> FulfillmentError:
    """Rebuild the typed error recorded on a ``FAILED`` payment."""
    try:
        kind = FailureKind(payment.failure_kind)
    except ValueError:
        kind = FailureKind.UNKNOWN
    error_class = _FAILURES_BY_KIND.get(kind, FulfillmentError)
    return error_class(
        payment.failure_reason or "Payment failed",
        details={
            "payment_id": str(payment.id),
            "transaction_id": payment.transaction_id or "",
        },
    )
