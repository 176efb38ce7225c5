"""Inventory Ledger.

All stock mutations go through ``InventoryLedger``.  A decrement locks the
record row and then issues a conditional ``UPDATE ... WHERE quantity >=
requested``; the conditional update alone keeps stock non-negative on
databases without row locks.  Every quantity change writes exactly one
``StockMovement`` in the same transaction.

Reservations are processed line by line, each line committing on its own.
A shortage halts the loop but does NOT undo the lines already reserved:
those stay decremented, each backed by its ``order`` movement, and are
returned by ``release`` when the order is cancelled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from modules.inventory.constants import AlertType, MovementReason
from modules.inventory.exceptions import InventoryRecordNotFound
from modules.inventory.models import InventoryAlert, InventoryRecord, StockMovement
from modules.notifications.router import NotificationRouter
from shared.domain.scheduler import IJobScheduler, JobType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockReference:
    """What a movement is for, e.g. ``("Order", "<uuid>")``."""

    reference_type: str = ""
    reference_id: str = ""

    @classmethod
    def for_order(cls, order: Any) -> StockReference:
        return cls("Order", str(order.id))


@dataclass(frozen=True)
class StockShortage:
    sku: str
    requested: int
    available: int

    @property
    def message(self) -> str:
        return (
            f"Insufficient inventory for {self.sku}. "
            f"Requested: {self.requested}, Available: {self.available}"
        )


@dataclass
class ReservationResult:
    ok: bool = True
    shortages: List[StockShortage] = field(default_factory=list)
    movements: List[StockMovement] = field(default_factory=list)


class InventoryLedger:
    """Reserve, release and restock inventory records."""

    def __init__(
        self,
        router: Optional[NotificationRouter] = None,
        scheduler: Optional[IJobScheduler] = None,
        auto_replenish: Optional[bool] = None,
    ) -> None:
        self._router = router or NotificationRouter()
        self._scheduler = scheduler
        if auto_replenish is None:
            auto_replenish = settings.INVENTORY_AUTO_REPLENISH
        self._auto_replenish = auto_replenish

    # ------------------------------------------------------------------
    # Reservation
    # ------------------------------------------------------------------

    def check_and_reserve(
        self, lines: Iterable[Any], reference: StockReference
    ) -> ReservationResult:
        """Decrement stock for each line, in the given order.

        *lines* are objects exposing ``product_id``, ``variant_id`` and
        ``quantity`` (order items).  A line already reserved for *reference*
        is skipped, so a redelivered job does not decrement twice.

        Raises:
            InventoryRecordNotFound: a line has no inventory record at all.
        """
        result = ReservationResult()
        log = logger.bind(
            reference_type=reference.reference_type,
            reference_id=reference.reference_id,
        )

        for line in lines:
            shortage, movement, record = self._reserve_line(line, reference)
            if shortage is not None:
                log.warning(
                    "inventory.shortage",
                    sku=shortage.sku,
                    requested=shortage.requested,
                    available=shortage.available,
                )
                result.ok = False
                result.shortages.append(shortage)
                break
            if movement is not None:
                result.movements.append(movement)
                self._check_low_stock(record)

        log.info(
            "inventory.reservation_finished",
            ok=result.ok,
            reserved=len(result.movements),
        )
        return result

    def _reserve_line(self, line: Any, reference: StockReference):
        quantity = int(line.quantity)
        with transaction.atomic():
            candidates = self._lock_candidates(line.product_id, line.variant_id)
            if not candidates:
                raise InventoryRecordNotFound(
                    f"No inventory record for product {line.product_id}"
                    + (f" variant {line.variant_id}" if line.variant_id else "")
                    + ".",
                    details={
                        "product_id": str(line.product_id),
                        "variant_id": str(line.variant_id or ""),
                    },
                )

            already = StockMovement.objects.filter(
                inventory_record__in=candidates,
                reason=MovementReason.ORDER,
                reference_type=reference.reference_type,
                reference_id=reference.reference_id,
            ).first()
            if already is not None:
                logger.info(
                    "inventory.line_already_reserved",
                    record_id=str(already.inventory_record_id),
                    reference_id=reference.reference_id,
                )
                return None, None, None

            record = next((c for c in candidates if c.quantity >= quantity), None)
            if record is None:
                return (
                    StockShortage(
                        sku=candidates[0].sku,
                        requested=quantity,
                        available=max(c.quantity for c in candidates),
                    ),
                    None,
                    None,
                )

            updated = InventoryRecord.objects.filter(
                pk=record.pk, quantity__gte=quantity
            ).update(quantity=F("quantity") - quantity, updated_at=timezone.now())
            if not updated:
                # The row changed under a stale read; report what is left now.
                record.refresh_from_db(fields=["quantity"])
                return (
                    StockShortage(record.sku, quantity, record.quantity),
                    None,
                    None,
                )

            record.refresh_from_db(fields=["quantity"])
            movement = self.record_movement(
                record,
                -quantity,
                MovementReason.ORDER,
                reference.reference_type,
                reference.reference_id,
            )

        logger.info(
            "inventory.reserved",
            sku=record.sku,
            quantity=quantity,
            remaining=record.quantity,
            warehouse=record.warehouse.code,
        )
        return None, movement, record

    def _lock_candidates(self, product_id, variant_id) -> Sequence[InventoryRecord]:
        """Lock the records able to serve a line, best warehouse first."""
        locked_ids = list(
            InventoryRecord.objects.select_for_update(of=("self",))
            .filter(
                product_id=product_id,
                variant_id=variant_id,
                warehouse__is_active=True,
            )
            .order_by("warehouse__priority", "warehouse__code")
            .values_list("id", flat=True)
        )
        records = InventoryRecord.objects.select_related(
            "product", "variant", "warehouse"
        ).in_bulk(locked_ids)
        return [records[pk] for pk in locked_ids]

    # ------------------------------------------------------------------
    # Other stock changes
    # ------------------------------------------------------------------

    def release(
        self, record: InventoryRecord, quantity: int, reference: StockReference
    ) -> Optional[StockMovement]:
        """Return *quantity* units reserved for *reference* (at most once)."""
        with transaction.atomic():
            record = InventoryRecord.objects.select_for_update().get(pk=record.pk)
            if StockMovement.objects.filter(
                inventory_record=record,
                reason=MovementReason.CANCELLATION,
                reference_type=reference.reference_type,
                reference_id=reference.reference_id,
            ).exists():
                logger.info(
                    "inventory.already_released",
                    record_id=str(record.id),
                    reference_id=reference.reference_id,
                )
                return None
            movement = self._increment(
                record, quantity, MovementReason.CANCELLATION, reference
            )

        logger.info(
            "inventory.released",
            record_id=str(record.id),
            quantity=quantity,
            reference_id=reference.reference_id,
        )
        return movement

    def restock(
        self,
        record: InventoryRecord,
        quantity: int,
        reference: Optional[StockReference] = None,
    ) -> StockMovement:
        """Add *quantity* units and resolve the low-stock alert if cleared."""
        if quantity <= 0:
            raise ValueError("Restock quantity must be positive.")
        reference = reference or StockReference()
        with transaction.atomic():
            record = InventoryRecord.objects.select_for_update().get(pk=record.pk)
            movement = self._increment(record, quantity, MovementReason.RESTOCK, reference)
            if not record.is_low_stock:
                InventoryAlert.objects.filter(
                    inventory_record=record,
                    alert_type=AlertType.LOW_STOCK,
                    is_active=True,
                ).update(is_active=False, updated_at=timezone.now())

        logger.info(
            "inventory.restocked",
            record_id=str(record.id),
            quantity=quantity,
            on_hand=record.quantity,
        )
        return movement

    def _increment(
        self,
        record: InventoryRecord,
        quantity: int,
        reason: str,
        reference: StockReference,
    ) -> StockMovement:
        InventoryRecord.objects.filter(pk=record.pk).update(
            quantity=F("quantity") + quantity, updated_at=timezone.now()
        )
        record.refresh_from_db(fields=["quantity"])
        return self.record_movement(
            record, quantity, reason, reference.reference_type, reference.reference_id
        )

    def record_movement(
        self,
        record: InventoryRecord,
        delta: int,
        reason: str,
        reference_type: str = "",
        reference_id: str = "",
    ) -> StockMovement:
        """Append the audit row for a quantity change already applied to *record*."""
        return StockMovement.objects.create(
            inventory_record=record,
            quantity_delta=delta,
            quantity_after=record.quantity,
            reason=reason,
            reference_type=reference_type,
            reference_id=str(reference_id),
        )

    def movements_for(self, reference: StockReference, reason: str = MovementReason.ORDER):
        return StockMovement.objects.select_related("inventory_record").filter(
            reason=reason,
            reference_type=reference.reference_type,
            reference_id=reference.reference_id,
        )

    # ------------------------------------------------------------------
    # Low stock
    # ------------------------------------------------------------------

    def _check_low_stock(self, record: InventoryRecord) -> Optional[InventoryAlert]:
        if not record.is_low_stock:
            return None

        message = (
            f"Low stock alert: {record.quantity} items remaining for {record.sku}"
        )
        try:
            with transaction.atomic():
                if InventoryAlert.objects.filter(
                    inventory_record=record,
                    alert_type=AlertType.LOW_STOCK,
                    is_active=True,
                ).exists():
                    logger.info("inventory.low_stock_alert_open", sku=record.sku)
                    return None
                alert = InventoryAlert.objects.create(
                    inventory_record=record,
                    alert_type=AlertType.LOW_STOCK,
                    threshold=record.reorder_threshold,
                    message=message,
                )
        except IntegrityError:
            # Another reservation opened the alert first.
            return None

        logger.warning(
            "inventory.low_stock",
            sku=record.sku,
            quantity=record.quantity,
            threshold=record.reorder_threshold,
        )
        self._router.notify_low_stock(record, record.sku)
        if self._auto_replenish and self._scheduler is not None:
            self._scheduler.schedule(
                JobType.REPLENISH_INVENTORY,
                {"inventory_record_id": str(record.id)},
            )
        return alert
