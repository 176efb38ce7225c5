"""In-memory notification event (never persisted by the saga)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from modules.notifications.constants import DEFAULT_CHANNELS, RecipientType


@dataclass(frozen=True)
class Recipient:
    recipient_type: str
    recipient_id: str

    @classmethod
    def customer(cls, customer_id: Any) -> Recipient:
        return cls(RecipientType.USER, str(customer_id))

    @classmethod
    def role(cls, role: str) -> Recipient:
        return cls(RecipientType.ROLE, str(role))

    @property
    def channel(self) -> str:
        return DEFAULT_CHANNELS[self.recipient_type]


@dataclass(frozen=True)
class NotificationEvent:
    notification_type: str
    title: str
    message: str
    reference_type: str
    reference_id: str
    recipients: Tuple[Recipient, ...] = ()
    details: Dict[str, Any] = field(default_factory=dict)
