"""Django ORM implementation of the Payment repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db.models import F
from django.utils import timezone

from modules.payments.constants import OPEN_STATES, PaymentStatus
from modules.payments.models import Payment, PaymentMethod, PaymentTransaction
from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)


class PaymentDjangoRepository(IPaymentRepository):
    """Concrete Payment repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Payment]:
        try:
            return (
                Payment.objects.select_related("order", "payment_method")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Payment]:
        """Lock the payment row only; related rows are loaded lazily."""
        try:
            return Payment.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def save(self, entity: Payment) -> Payment:
        entity.save()
        logger.info("payment.saved", payment_id=str(entity.id), status=entity.status)
        return entity

    def current_for_order(self, order_id: Any) -> Optional[Payment]:
        return (
            Payment.objects.select_related("payment_method")
            .filter(order_id=order_id)
            .exclude(status=PaymentStatus.SUPERSEDED)
            .order_by("-created_at", "-id")
            .first()
        )

    def open_for_order_for_update(self, order_id: Any) -> List[Payment]:
        return list(
            Payment.objects.select_for_update()
            .filter(order_id=order_id, status__in=OPEN_STATES)
            .order_by("created_at")
        )

    def get_method(self, method_id: Any) -> Optional[PaymentMethod]:
        try:
            return PaymentMethod.objects.filter(id=method_id).first()
        except (ValueError, ValidationError):
            return None

    def default_method_for(self, customer_id: Any) -> Optional[PaymentMethod]:
        return PaymentMethod.objects.filter(
            customer_id=customer_id, is_default=True
        ).first()

    def update_if_status(
        self, payment: Payment, expected: Iterable[str], **fields: Any
    ) -> bool:
        updated = Payment.objects.filter(
            pk=payment.pk, status__in=list(expected)
        ).update(updated_at=timezone.now(), **fields)
        if updated:
            for name, value in fields.items():
                setattr(payment, name, value)
        return bool(updated)

    def increment_confirmation_checks(self, payment: Payment) -> int:
        Payment.objects.filter(pk=payment.pk).update(
            confirmation_checks=F("confirmation_checks") + 1,
            updated_at=timezone.now(),
        )
        payment.refresh_from_db(fields=["confirmation_checks"])
        return payment.confirmation_checks

    def add_transaction(
        self,
        payment: Payment,
        transaction_type: str,
        status: str,
        notes: str = "",
        reference: str = "",
        response: Optional[Dict[str, Any]] = None,
    ) -> PaymentTransaction:
        body = dict(response or {})
        if notes:
            body["notes"] = notes
        return PaymentTransaction.objects.create(
            payment=payment,
            transaction_type=transaction_type,
            status=status,
            amount=payment.amount,
            gateway_reference=reference or "",
            response=body,
        )

    def stale_processing(self, before: datetime) -> List[Payment]:
        return list(
            Payment.objects.filter(
                status=PaymentStatus.PROCESSING, updated_at__lt=before
            ).order_by("updated_at")
        )
