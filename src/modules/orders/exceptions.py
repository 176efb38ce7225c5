"""Order domain exceptions.

Raised by the order services and the order processor.  Failures that the
saga routes to an operator carry a ``FailureKind``; input validation
errors are raised to the caller of ``OrderService``.
"""

from __future__ import annotations

from shared.domain.failures import FulfillmentError


class OrderNotFound(FulfillmentError):
    """The requested order does not exist."""


class InvalidOrderStatus(FulfillmentError):
    """An invalid status transition was attempted."""


class InactiveCustomer(FulfillmentError):
    """The customer is inactive and cannot place orders."""


class CustomerNotFound(FulfillmentError):
    """The customer referenced by the order does not exist."""


class ProductNotFound(FulfillmentError):
    """A product (or variant) referenced by an order item does not exist."""


class InactiveProduct(FulfillmentError):
    """A product referenced by an order item is inactive."""
