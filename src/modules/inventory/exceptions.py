"""Inventory domain exceptions."""

from __future__ import annotations

from shared.domain.failures import FailureKind, FulfillmentError


class InsufficientStock(FulfillmentError):
    """On-hand quantity is lower than the quantity requested by an order line."""

    failure_kind = FailureKind.INSUFFICIENT_STOCK


class InventoryRecordNotFound(FulfillmentError):
    """No inventory record exists for the product/variant of an order line."""

    failure_kind = FailureKind.INVENTORY_RECORD_NOT_FOUND


class ImmutableStockMovement(Exception):
    """Stock movements are write-once audit records."""
