"""Customer-side collaborators of the order saga.

``OrderProcessor`` receives these through its constructor.  The ``Null*``
implementations let a deployment (or a test) run the saga without a
loyalty programme or cart storage, replacing runtime "is this subsystem
installed?" checks with an explicit dependency.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING, Optional

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.customers.models import Cart, CartItem, LoyaltyCredit

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)

LOYALTY_VALIDITY = timedelta(days=365)


class ICartService(ABC):
    @abstractmethod
    def clear_active_cart(self, customer_id) -> int:
        """Empty the customer's cart; returns the number of removed items."""


class ILoyaltyService(ABC):
    @abstractmethod
    def award_for_order(self, order: Order) -> Optional[LoyaltyCredit]:
        """Grant loyalty credit for *order* (at most once per order)."""


class CartService(ICartService):
    def clear_active_cart(self, customer_id) -> int:
        cart = Cart.objects.filter(customer_id=customer_id).first()
        if cart is None:
            return 0
        removed, _ = CartItem.objects.filter(cart=cart).delete()
        logger.info("cart.cleared", customer_id=str(customer_id), removed=removed)
        return removed


class LoyaltyService(ILoyaltyService):
    """Awards ``floor(total * rate)`` points, valid for one year."""

    def __init__(self, rate: Optional[Decimal] = None) -> None:
        self._rate = Decimal(str(rate if rate is not None else settings.LOYALTY_POINTS_RATE))

    def points_for(self, total: Decimal) -> int:
        return int((Decimal(total) * self._rate).to_integral_value(rounding=ROUND_DOWN))

    def award_for_order(self, order: Order) -> Optional[LoyaltyCredit]:
        existing = LoyaltyCredit.objects.filter(order_id=order.id).first()
        if existing:
            logger.info("loyalty.already_awarded", order_id=str(order.id))
            return existing

        points = self.points_for(order.total_amount)
        try:
            with transaction.atomic():
                credit = LoyaltyCredit.objects.create(
                    customer_id=order.customer_id,
                    order_id=order.id,
                    points=points,
                    expires_at=timezone.now() + LOYALTY_VALIDITY,
                )
        except IntegrityError:
            # Lost the race against a concurrent completion of the same order.
            return LoyaltyCredit.objects.get(order_id=order.id)

        logger.info(
            "loyalty.awarded",
            order_id=str(order.id),
            customer_id=str(order.customer_id),
            points=points,
        )
        return credit


class NullCartService(ICartService):
    def clear_active_cart(self, customer_id) -> int:
        return 0


class NullLoyaltyService(ILoyaltyService):
    def award_for_order(self, order: Order) -> Optional[LoyaltyCredit]:
        return None
