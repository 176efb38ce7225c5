"""Configurable fake gateways for development and testing.

No external calls are made.  Behaviour is configured at runtime
(``configure``) and every call is recorded in ``calls``.  A capture
repeated with the same idempotency key returns the first result without
charging again, as a real provider does.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.conf import settings

from modules.payments.exceptions import ExternalServiceError, GatewayTimeout
from modules.payments.gateway.port import (
    ChargeResult,
    PaymentGateway,
    RefundResult,
    VerificationResult,
)


class FakeGateway(PaymentGateway):
    transaction_prefix = "txn_"
    token_bytes = 10
    pending_capture = False

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.charges: Dict[str, ChargeResult] = {}
        self.configure()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Card declined",
        verify_outcome: str = "verified",
        unavailable: bool = False,
        timeout: bool = False,
    ) -> None:
        """Set the outcome of subsequent calls.

        ``verify_outcome`` is one of ``verified``, ``pending`` or
        ``rejected``.  ``unavailable``/``timeout`` make every call raise.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.verify_outcome = verify_outcome
        self.unavailable = unavailable
        self.timeout = timeout

    def _check_reachable(self) -> None:
        if self.timeout:
            raise GatewayTimeout(
                f"Payment gateway did not respond within "
                f"{settings.PAYMENT_GATEWAY_TIMEOUT}s"
            )
        if self.unavailable:
            raise ExternalServiceError("Payment gateway unavailable")

    def new_transaction_id(self) -> str:
        return f"{self.transaction_prefix}{secrets.token_hex(self.token_bytes)}"

    def capture(
        self,
        amount: Decimal,
        currency: str,
        credentials: Dict[str, Any],
        idempotency_key: str,
    ) -> ChargeResult:
        self.calls.append(
            {
                "method": "capture",
                "amount": amount,
                "currency": currency,
                "idempotency_key": idempotency_key,
            }
        )
        self._check_reachable()

        if idempotency_key in self.charges:
            return self.charges[idempotency_key]

        if self.should_succeed:
            result = ChargeResult(
                success=True,
                transaction_id=self.new_transaction_id(),
                gateway_status="pending" if self.pending_capture else "succeeded",
                pending=self.pending_capture,
            )
        else:
            result = ChargeResult(
                success=False,
                gateway_status="declined",
                failure_reason=self.failure_reason,
            )
        self.charges[idempotency_key] = result
        return result

    def verify(self, transaction_id: str) -> VerificationResult:
        self.calls.append({"method": "verify", "transaction_id": transaction_id})
        self._check_reachable()

        if self.verify_outcome == "verified":
            return VerificationResult(verified=True)
        if self.verify_outcome == "pending":
            return VerificationResult(verified=False, pending=True)
        return VerificationResult(verified=False, failure_reason="Transaction not found")

    def refund(self, transaction_id: str, amount: Decimal, reason: str) -> RefundResult:
        self.calls.append(
            {
                "method": "refund",
                "transaction_id": transaction_id,
                "amount": amount,
                "reason": reason,
            }
        )
        self._check_reachable()

        if self.should_succeed:
            return RefundResult(success=True, refund_id=f"re_{secrets.token_hex(8)}")
        return RefundResult(success=False, failure_reason=self.failure_reason)

    def captures(self) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["method"] == "capture"]

    def reset(self) -> None:
        self.calls.clear()
        self.charges.clear()
        self.configure()


class FakeCardGateway(FakeGateway):
    transaction_prefix = "ch_"


class FakeWalletGateway(FakeGateway):
    transaction_prefix = "PP-"
    token_bytes = 8

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().configure(should_succeed, failure_reason or "Payment rejected", **kwargs)


class FakeBankTransferGateway(FakeGateway):
    """Accepts the transfer instruction; funds settle on a later check."""

    transaction_prefix = "BT-"
    token_bytes = 8
    pending_capture = True
