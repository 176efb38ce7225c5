"""Payment gateway port (abstract interface).

Every adapter takes the payment id as idempotency key, so a capture that
is retried after a lost response is not charged twice.  Adapters signal
an unreachable or slow provider by raising ``ExternalServiceError`` (or
``GatewayTimeout``); a declined payment is a normal ``ChargeResult``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ChargeResult:
    """Result of a capture attempt.

    ``pending`` is set by asynchronous methods (bank transfer): the
    capture was accepted but settles later, under ``transaction_id``.
    """

    success: bool
    transaction_id: Optional[str] = None
    gateway_status: Optional[str] = None
    pending: bool = False
    failure_reason: Optional[str] = None
    response: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    pending: bool = False
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class RefundResult:
    success: bool
    refund_id: Optional[str] = None
    failure_reason: Optional[str] = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def capture(
        self,
        amount: Decimal,
        currency: str,
        credentials: Dict[str, Any],
        idempotency_key: str,
    ) -> ChargeResult:
        """Capture *amount* from the payment method described by *credentials*."""

    @abstractmethod
    def verify(self, transaction_id: str) -> VerificationResult:
        """Ask the provider to corroborate a captured or pending transaction."""

    @abstractmethod
    def refund(self, transaction_id: str, amount: Decimal, reason: str) -> RefundResult:
        """Refund a previous capture."""
