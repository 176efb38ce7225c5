"""Inventory domain constants."""

from django.db import models


class MovementReason(models.TextChoices):
    ORDER = "order", "Order reservation"
    CANCELLATION = "cancellation", "Order cancellation"
    RESTOCK = "restock", "Restock"
    ADJUSTMENT = "adjustment", "Manual adjustment"


class AlertType(models.TextChoices):
    LOW_STOCK = "low_stock", "Low stock"


# At most one movement of these reasons per (record, reference).
ONCE_PER_REFERENCE_REASONS: tuple[str, ...] = (
    MovementReason.ORDER,
    MovementReason.CANCELLATION,
)
