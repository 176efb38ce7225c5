"""Payment domain constants.

Payment state machine::

    PENDING -> PROCESSING -> COMPLETED | FAILED | PENDING_CONFIRMATION
    PENDING_CONFIRMATION -> COMPLETED | FAILED
    COMPLETED -> REFUNDED
    PENDING | PENDING_CONFIRMATION -> SUPERSEDED   (replaced by a new attempt)

``PROCESSING -> PENDING`` is the only backward edge: it releases the claim
when the gateway is unreachable and the job will be retried.
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION", "Pending confirmation"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"
    SUPERSEDED = "SUPERSEDED", "Superseded"


VALID_TRANSITIONS: dict[str, set[str]] = {
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        PaymentStatus.SUPERSEDED,
    },
    PaymentStatus.PROCESSING: {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.PENDING_CONFIRMATION,
        PaymentStatus.PENDING,
    },
    PaymentStatus.PENDING_CONFIRMATION: {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.SUPERSEDED,
    },
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
    PaymentStatus.SUPERSEDED: set(),
}

# Processing never changes a payment in one of these states.
FINAL_STATES: set[str] = {
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.REFUNDED,
    PaymentStatus.SUPERSEDED,
}

# At most one payment per order may be in one of these states.
OPEN_STATES: tuple[str, ...] = (
    PaymentStatus.PENDING,
    PaymentStatus.PROCESSING,
    PaymentStatus.PENDING_CONFIRMATION,
)


class PaymentMethodType(models.TextChoices):
    CARD = "card", "Card"
    WALLET = "wallet", "Wallet"
    BANK_TRANSFER = "bank_transfer", "Bank transfer"
    OTHER = "other", "Other"


# Captured and verified inside the processing job.
SYNCHRONOUS_METHODS: set[str] = {PaymentMethodType.CARD, PaymentMethodType.WALLET}


class TransactionType(models.TextChoices):
    STATUS_UPDATE = "status_update", "Status update"
    CAPTURE = "capture", "Capture"
    VERIFICATION = "verification", "Verification"
    REFUND = "refund", "Refund"


class InvoiceStatus(models.TextChoices):
    PAID = "paid", "Paid"
    VOID = "void", "Void"
