"""Payment repository interface.

Extends ``IRepository[Payment]`` with the look-ups the payment state
machine needs: the order's current attempt, stored payment methods,
conditional updates and the transaction audit trail.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.payments.models import Payment, PaymentMethod, PaymentTransaction


class IPaymentRepository(IRepository["Payment"]):
    @abstractmethod
    def current_for_order(self, order_id: Any) -> Optional[Payment]:
        """Latest payment attempt of an order that has not been superseded."""

    @abstractmethod
    def open_for_order_for_update(self, order_id: Any) -> List[Payment]:
        """Lock and return the order's non-terminal payments."""

    @abstractmethod
    def get_method(self, method_id: Any) -> Optional[PaymentMethod]:
        """Retrieve a stored payment method."""

    @abstractmethod
    def default_method_for(self, customer_id: Any) -> Optional[PaymentMethod]:
        """Retrieve the customer's default payment method."""

    @abstractmethod
    def update_if_status(
        self, payment: Payment, expected: Iterable[str], **fields: Any
    ) -> bool:
        """Conditionally update *fields*; ``False`` if the status moved on."""

    @abstractmethod
    def increment_confirmation_checks(self, payment: Payment) -> int:
        """Atomically count one more confirmation check; returns the total."""

    @abstractmethod
    def add_transaction(
        self,
        payment: Payment,
        transaction_type: str,
        status: str,
        notes: str = "",
        reference: str = "",
        response: Optional[Dict[str, Any]] = None,
    ) -> PaymentTransaction:
        """Append an entry to the payment's audit trail."""

    @abstractmethod
    def stale_processing(self, before: datetime) -> List[Payment]:
        """Payments in ``PROCESSING`` not touched since *before*."""
