"""Payment gateway registry.

One gateway per payment method type, built from the dotted paths in
``settings.PAYMENT_GATEWAYS``.  Unknown method types use the ``other``
entry.  ``set_gateway``/``reset_gateways`` swap implementations in tests.
"""

from __future__ import annotations

from typing import Dict

from django.conf import settings
from django.utils.module_loading import import_string

from modules.payments.gateway.port import (
    ChargeResult,
    PaymentGateway,
    RefundResult,
    VerificationResult,
)

__all__ = [
    "ChargeResult",
    "PaymentGateway",
    "RefundResult",
    "VerificationResult",
    "get_gateway",
    "reset_gateways",
    "set_gateway",
]

_gateways: Dict[str, PaymentGateway] = {}


def get_gateway(method_type: str) -> PaymentGateway:
    """Return the gateway for *method_type* (one instance per process)."""
    if method_type not in _gateways:
        paths = settings.PAYMENT_GATEWAYS
        _gateways[method_type] = import_string(paths.get(method_type, paths["other"]))()
    return _gateways[method_type]


def set_gateway(method_type: str, gateway: PaymentGateway) -> None:
    _gateways[method_type] = gateway


def reset_gateways() -> None:
    _gateways.clear()
