"""Customer, Cart and LoyaltyCredit models.

- Email is unique in the system.
- Inactive customers cannot place orders (enforced by ``OrderService``).
- A customer has at most one cart; it is emptied when an order completes.
- At most one loyalty grant exists per order (unique ``order``), so a
  redelivered completion job can never award points twice.
"""

from __future__ import annotations

import structlog
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel

logger = structlog.get_logger(__name__)


class Customer(BaseModel):
    """Customer aggregate root."""

    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=254, unique=True)
    phone = models.CharField(max_length=20, blank=True, default="")
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "customers"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["is_active"], name="customers_active_idx"),
        ]

    def save(self, *args, **kwargs) -> None:
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        local, _, domain = self.email.partition("@")
        return f"{self.name} ({local[:2]}***@{domain})"


class Cart(BaseModel):
    customer = models.OneToOneField(
        "customers.Customer",
        on_delete=models.CASCADE,
        related_name="cart",
    )

    class Meta:
        db_table = "carts"

    def __str__(self) -> str:
        return f"Cart of {self.customer_id}"


class CartItem(BaseModel):
    cart = models.ForeignKey(
        "customers.Cart",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product = models.ForeignKey("products.Product", on_delete=models.CASCADE)
    variant = models.ForeignKey(
        "products.ProductVariant",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
    )
    quantity = models.PositiveIntegerField(
        default=1, validators=[MinValueValidator(1)]
    )

    class Meta:
        db_table = "cart_items"
        ordering = ["created_at"]


class LoyaltyCredit(BaseModel):
    """Points granted to a customer for a completed order."""

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="loyalty_credits",
    )
    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="loyalty_credit",
    )
    points = models.PositiveIntegerField()
    expires_at = models.DateTimeField()

    class Meta:
        db_table = "loyalty_credits"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.points} pts for order {self.order_id}"
