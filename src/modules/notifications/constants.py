"""Notification recipients, channels and event types."""

from django.db import models


class RecipientType(models.TextChoices):
    USER = "user", "Customer"
    ROLE = "role", "Operations role"


class Role(models.TextChoices):
    INVENTORY_MANAGER = "inventory_manager", "Inventory operations"
    PAYMENT_ADMIN = "payment_admin", "Payment operations"
    SYSTEM_ADMIN = "system_admin", "System operations"


class Channel(models.TextChoices):
    EMAIL = "email", "Email"
    IN_APP = "in_app", "In-app"
    SMS = "sms", "SMS"


class NotificationType(models.TextChoices):
    INVENTORY_SHORTAGE = "inventory_shortage", "Inventory shortage"
    LOW_STOCK = "low_stock", "Low stock"
    PAYMENT_FAILURE = "payment_failure", "Payment failure"
    PAYMENT_FAILED = "payment_failed", "Payment failed"
    PAYMENT_COMPLETED = "payment_completed", "Payment completed"
    ORDER_CONFIRMED = "order_confirmed", "Order confirmed"
    SYSTEM_ERROR = "system_error", "System error"


DEFAULT_CHANNELS: dict[str, str] = {
    RecipientType.USER: Channel.EMAIL,
    RecipientType.ROLE: Channel.IN_APP,
}
