"""PaymentMethod, Payment, PaymentTransaction and Invoice models.

Invariants:
- A ``PaymentMethod`` is immutable once stored.
- At most one open (non-terminal) ``Payment`` per order, enforced by a
  partial unique constraint and by ``PaymentService`` superseding the
  previous attempt.
- ``PaymentTransaction`` rows are an append-only audit trail.
- One ``Invoice`` per order.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from django.db import models

from modules.core.models import BaseModel
from modules.payments.constants import (
    FINAL_STATES,
    OPEN_STATES,
    SYNCHRONOUS_METHODS,
    VALID_TRANSITIONS,
    InvoiceStatus,
    PaymentMethodType,
    PaymentStatus,
    TransactionType,
)
from modules.payments.exceptions import ImmutablePaymentMethod


class PaymentMethod(BaseModel):
    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="payment_methods",
    )
    method_type = models.CharField(max_length=20, choices=PaymentMethodType.choices)
    provider = models.CharField(max_length=50, blank=True, default="")
    # Opaque gateway token/reference; never a raw card number.
    credentials = models.JSONField(default=dict, blank=True)
    label = models.CharField(max_length=100, blank=True, default="")
    is_default = models.BooleanField(default=False)

    class Meta:
        db_table = "payment_methods"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["customer"],
                condition=models.Q(is_default=True),
                name="payment_method_one_default",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ImmutablePaymentMethod(f"Payment method {self.pk} is immutable.")
        super().save(*args, **kwargs)

    @property
    def is_synchronous(self) -> bool:
        return self.method_type in SYNCHRONOUS_METHODS

    def __str__(self) -> str:
        return f"{self.method_type} {self.label}".strip()


class Payment(BaseModel):
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    status = models.CharField(
        max_length=25,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    payment_method = models.ForeignKey(
        "payments.PaymentMethod",
        on_delete=models.PROTECT,
        related_name="payments",
        null=True,
        blank=True,
    )
    transaction_id = models.CharField(max_length=100, blank=True, default="")
    failure_kind = models.CharField(max_length=40, blank=True, default="")
    failure_reason = models.TextField(blank=True, default="")
    processed_at = models.DateTimeField(null=True, blank=True)
    verified_at = models.DateTimeField(null=True, blank=True)
    confirmation_checks = models.PositiveSmallIntegerField(default=0)

    class Meta:
        db_table = "payments"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "updated_at"], name="payments_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(status__in=OPEN_STATES),
                name="payment_one_open_per_order",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gte=Decimal("0.00")),
                name="payment_amount_non_negative",
            ),
        ]

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def __str__(self) -> str:
        return f"Payment {self.id} ({self.status})"


class PaymentTransaction(BaseModel):
    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    transaction_type = models.CharField(max_length=20, choices=TransactionType.choices)
    status = models.CharField(max_length=25)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    gateway_reference = models.CharField(max_length=100, blank=True, default="")
    response = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "payment_transactions"
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.transaction_type}:{self.status}"


class Invoice(BaseModel):
    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="invoice",
    )
    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    invoice_number = models.CharField(max_length=40, unique=True)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    issued_at = models.DateTimeField()
    status = models.CharField(
        max_length=10,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.PAID,
    )

    class Meta:
        db_table = "invoices"
        ordering = ["-issued_at"]

    def __str__(self) -> str:
        return self.invoice_number
