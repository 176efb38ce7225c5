"""Job scheduler port.

The saga never calls another job directly: it asks the scheduler to
enqueue it.  Delivery is at-least-once, so every job must tolerate being
run more than once.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Protocol


class JobType(str, Enum):
    ADVANCE_ORDER = "orders.advance"
    PROCESS_PAYMENT = "payments.process"
    CONFIRM_PAYMENT = "payments.confirm"
    CREATE_SHIPMENT = "shipments.create"
    ORDER_CONFIRMATION = "notifications.order_confirmation"
    UPDATE_ANALYTICS = "analytics.update"
    REPLENISH_INVENTORY = "inventory.replenish"


class IJobScheduler(Protocol):
    """Scheduler interface."""

    def schedule(
        self,
        job_type: JobType,
        payload: Dict[str, Any],
        delay: Optional[float] = None,
    ) -> None: ...
