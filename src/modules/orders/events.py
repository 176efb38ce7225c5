"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is placed."""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised on every status transition (``data``: old/new status)."""


@dataclass(frozen=True)
class OrderFailed(DomainEvent):
    """Raised when the saga moves an order to ``ERROR``."""


@dataclass(frozen=True)
class OrderCompleted(DomainEvent):
    """Raised when the saga finishes an order."""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled by an administrator."""
