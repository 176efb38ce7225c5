"""Typed failure classification shared by every fulfillment job.

Each domain exception carries a ``FailureKind`` so that job entry points can
route notifications from the exception type itself instead of inspecting
its message.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class FailureKind(str, Enum):
    INSUFFICIENT_STOCK = "insufficient_stock"
    INVENTORY_RECORD_NOT_FOUND = "inventory_record_not_found"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_VERIFICATION_FAILED = "payment_verification_failed"
    PAYMENT_METHOD_NOT_FOUND = "payment_method_not_found"
    PAYMENT_NOT_FOUND = "payment_not_found"
    EXTERNAL_SERVICE = "external_service"
    UNKNOWN = "unknown"


PAYMENT_FAILURE_KINDS: frozenset[FailureKind] = frozenset(
    {
        FailureKind.PAYMENT_FAILED,
        FailureKind.PAYMENT_VERIFICATION_FAILED,
        FailureKind.EXTERNAL_SERVICE,
    }
)


class FulfillmentError(Exception):
    """Base class for failures raised inside the fulfillment saga.

    ``details`` holds structured context (SKU, amounts, gateway codes) that
    travels with the notification; it is never used for routing.
    """

    failure_kind: FailureKind = FailureKind.UNKNOWN

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details: Dict[str, Any] = details or {}


def classify_failure(exc: BaseException) -> FailureKind:
    """Return the failure kind for *exc*; foreign exceptions are ``UNKNOWN``."""
    if isinstance(exc, FulfillmentError):
        return exc.failure_kind
    return FailureKind.UNKNOWN
