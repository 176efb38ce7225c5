"""Order domain constants.

Defines status choices, saga steps and the valid status transitions of
the order state machine::

    PENDING -> PROCESSING -> INVENTORY_CHECKED -> PAID -> COMPLETED
    PROCESSING | INVENTORY_CHECKED | PAID -> ERROR
    PENDING | INVENTORY_CHECKED | ERROR -> CANCELLED   (administrative)
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    INVENTORY_CHECKED = "INVENTORY_CHECKED", "Inventory checked"
    PAID = "PAID", "Paid"
    COMPLETED = "COMPLETED", "Completed"
    ERROR = "ERROR", "Error"
    CANCELLED = "CANCELLED", "Cancelled"


class SagaStep(models.TextChoices):
    """Where ``orders.advance`` resumes the order."""

    RESERVE_INVENTORY = "RESERVE_INVENTORY", "Reserve inventory"
    CAPTURE_PAYMENT = "CAPTURE_PAYMENT", "Capture payment"
    AWAIT_PAYMENT = "AWAIT_PAYMENT", "Await payment"
    FINALIZE = "FINALIZE", "Finalize"
    DONE = "DONE", "Done"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.INVENTORY_CHECKED, OrderStatus.ERROR},
    OrderStatus.INVENTORY_CHECKED: {
        OrderStatus.PAID,
        OrderStatus.ERROR,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PAID: {OrderStatus.COMPLETED, OrderStatus.ERROR},
    OrderStatus.COMPLETED: set(),
    OrderStatus.ERROR: {OrderStatus.CANCELLED},
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}

# Redelivered ``orders.advance`` jobs no-op on orders in these states.
HALTED_STATES: set[str] = TERMINAL_STATES | {OrderStatus.ERROR}

# Statuses the saga has already claimed; ``ERROR`` is reachable from each.
IN_FLIGHT_STATES: set[str] = {
    OrderStatus.PROCESSING,
    OrderStatus.INVENTORY_CHECKED,
    OrderStatus.PAID,
}

ORDER_NUMBER_MAX_RETRIES = 5

DEFAULT_CURRENCY = "USD"
