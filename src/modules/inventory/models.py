"""Warehouse, InventoryRecord, StockMovement and InventoryAlert models.

Invariants:
- One ``InventoryRecord`` per (product, variant, warehouse).
- ``quantity`` never goes below zero (database check constraint; the
  ledger decrements with a conditional update).
- ``StockMovement`` is append-only: every quantity change writes exactly
  one movement and movements are never edited or deleted.
- At most one ``order`` movement and one ``cancellation`` movement per
  (record, reference), which makes re-running a reservation harmless.
"""

from __future__ import annotations

from typing import Any

from django.conf import settings
from django.db import models

from modules.core.models import BaseModel
from modules.inventory.constants import (
    ONCE_PER_REFERENCE_REASONS,
    AlertType,
    MovementReason,
)
from modules.inventory.exceptions import ImmutableStockMovement


def _default_reorder_threshold() -> int:
    return settings.INVENTORY_DEFAULT_REORDER_THRESHOLD


class Warehouse(BaseModel):
    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=255)
    priority = models.PositiveSmallIntegerField(default=100)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "warehouses"
        ordering = ["priority", "code"]

    def __str__(self) -> str:
        return self.code


class InventoryRecord(BaseModel):
    """On-hand quantity of a product (or variant) in one warehouse."""

    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="inventory_records",
    )
    variant = models.ForeignKey(
        "products.ProductVariant",
        on_delete=models.PROTECT,
        related_name="inventory_records",
        null=True,
        blank=True,
    )
    warehouse = models.ForeignKey(
        "inventory.Warehouse",
        on_delete=models.PROTECT,
        related_name="inventory_records",
    )
    quantity = models.PositiveIntegerField(default=0)
    reorder_threshold = models.PositiveIntegerField(default=_default_reorder_threshold)

    class Meta:
        db_table = "inventory_records"
        constraints = [
            models.UniqueConstraint(
                fields=["product", "variant", "warehouse"],
                name="inventory_record_unique_location",
            ),
            models.UniqueConstraint(
                fields=["product", "warehouse"],
                condition=models.Q(variant__isnull=True),
                name="inventory_record_unique_base_product",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0),
                name="inventory_record_quantity_non_negative",
            ),
        ]

    @property
    def sku(self) -> str:
        if self.variant_id:
            return self.variant.sku
        return self.product.sku

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.reorder_threshold

    def __str__(self) -> str:
        return f"{self.sku}@{self.warehouse_id}: {self.quantity}"


class StockMovement(BaseModel):
    """Write-once audit record of a single quantity change."""

    inventory_record = models.ForeignKey(
        "inventory.InventoryRecord",
        on_delete=models.PROTECT,
        related_name="movements",
    )
    quantity_delta = models.IntegerField()
    quantity_after = models.PositiveIntegerField()
    reason = models.CharField(max_length=20, choices=MovementReason.choices)
    reference_type = models.CharField(max_length=50, blank=True, default="")
    reference_id = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        db_table = "stock_movements"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["reference_type", "reference_id"],
                name="stock_movement_reference_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["inventory_record", "reason", "reference_type", "reference_id"],
                condition=models.Q(reason__in=ONCE_PER_REFERENCE_REASONS),
                name="stock_movement_once_per_reference",
            ),
            models.CheckConstraint(
                condition=~models.Q(quantity_delta=0),
                name="stock_movement_delta_non_zero",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ImmutableStockMovement(f"Stock movement {self.pk} is write-once.")
        super().save(*args, **kwargs)

    def delete(self, *args: Any, **kwargs: Any):
        raise ImmutableStockMovement(f"Stock movement {self.pk} cannot be deleted.")

    def __str__(self) -> str:
        return f"{self.reason} {self.quantity_delta:+d} -> {self.quantity_after}"


class InventoryAlert(BaseModel):
    inventory_record = models.ForeignKey(
        "inventory.InventoryRecord",
        on_delete=models.CASCADE,
        related_name="alerts",
    )
    alert_type = models.CharField(
        max_length=20,
        choices=AlertType.choices,
        default=AlertType.LOW_STOCK,
    )
    threshold = models.PositiveIntegerField()
    message = models.TextField()
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "inventory_alerts"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["inventory_record", "alert_type"],
                condition=models.Q(is_active=True),
                name="inventory_alert_one_active",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.alert_type} ({'active' if self.is_active else 'resolved'})"
