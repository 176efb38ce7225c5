"""Notification delivery adapters.

The delivery collaborator (email/SMS/in-app providers) lives outside the
saga.  ``LoggingDelivery`` is the default adapter; ``InMemoryDelivery``
records messages for test assertions and can be told to fail.
The active adapter is configured with ``NOTIFICATION_DELIVERY_CLASS``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import structlog
from django.conf import settings
from django.utils.module_loading import import_string

logger = structlog.get_logger(__name__)


class NotificationDeliveryError(Exception):
    """A delivery provider rejected or could not accept the message."""


class INotificationDelivery(ABC):
    """Abstract interface for notification delivery adapters."""

    @abstractmethod
    def notify(
        self,
        recipient_type: str,
        recipient_id: str,
        notification_type: str,
        title: str,
        message: str,
        reference_type: str,
        reference_id: str,
        channel: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Deliver one message to one recipient."""


class LoggingDelivery(INotificationDelivery):
    """Writes every notification to the structured log."""

    def notify(
        self,
        recipient_type: str,
        recipient_id: str,
        notification_type: str,
        title: str,
        message: str,
        reference_type: str,
        reference_id: str,
        channel: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        logger.info(
            "notification.sent",
            recipient_type=recipient_type,
            recipient_id=recipient_id,
            notification_type=notification_type,
            title=title,
            reference_type=reference_type,
            reference_id=reference_id,
            channel=channel,
        )


class InMemoryDelivery(INotificationDelivery):
    """Records notifications in memory for test assertions."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.should_fail = False

    def configure(self, should_fail: bool = False) -> None:
        self.should_fail = should_fail

    def notify(
        self,
        recipient_type: str,
        recipient_id: str,
        notification_type: str,
        title: str,
        message: str,
        reference_type: str,
        reference_id: str,
        channel: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self.should_fail:
            raise NotificationDeliveryError("Delivery provider unavailable")
        self.sent.append(
            {
                "recipient_type": recipient_type,
                "recipient_id": recipient_id,
                "notification_type": notification_type,
                "title": title,
                "message": message,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "channel": channel,
                "details": details or {},
            }
        )

    def to(self, recipient_id: str) -> List[Dict[str, Any]]:
        return [n for n in self.sent if n["recipient_id"] == str(recipient_id)]

    def of_type(self, notification_type: str) -> List[Dict[str, Any]]:
        return [n for n in self.sent if n["notification_type"] == notification_type]

    def reset(self) -> None:
        self.sent.clear()
        self.should_fail = False


_delivery: Optional[INotificationDelivery] = None


def get_delivery() -> INotificationDelivery:
    """Return the configured delivery adapter (one instance per process)."""
    global _delivery
    if _delivery is None:
        _delivery = import_string(settings.NOTIFICATION_DELIVERY_CLASS)()
    return _delivery


def reset_delivery() -> None:
    global _delivery
    _delivery = None
