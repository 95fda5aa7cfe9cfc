"""Promotional pricing.

Pure functions of a product, its promotions and the instant being priced.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from .models import CartItem, Product, Promotion


def active_promotion(product: Product, now: Optional[datetime] = None) -> Optional[Promotion]:
    """
    Return the promotion applying to ``product`` at ``now``.

    When several promotions overlap, the first one in the order the API listed
    them wins. The business rule behind overlapping offers is unknown, so the
    list is never re-sorted.
    """
    if now is None:
        now = datetime.now()
    for promotion in product.promotions:
        if promotion.is_active(now):
            return promotion
    return None


def has_active_promotion(product: Product, now: Optional[datetime] = None) -> bool:
    return active_promotion(product, now) is not None


def effective_price(product: Product, now: Optional[datetime] = None) -> Decimal:
    """Unit price used for display and checkout: promotional if active, else base."""
    promotion = active_promotion(product, now)
    if promotion is None:
        return product.price
    return promotion.price


def discount_percentage(product: Product, now: Optional[datetime] = None) -> int:
    """
    Rounded discount of the active promotion against the base price.

    Returns 0 without an active promotion, and also when the base price is 0
    (no meaningful ratio exists).
    """
    if product.price == 0:
        return 0
    promotion = active_promotion(product, now)
    if promotion is None:
        return 0
    return int(round((1 - promotion.price / product.price) * 100))


def line_total(item: CartItem, now: Optional[datetime] = None) -> Decimal:
    return effective_price(item.product, now) * item.quantity


def format_price(product: Product, now: Optional[datetime] = None) -> str:
    """Effective price as shown to customers, e.g. ``7.50 €``."""
    return f"{effective_price(product, now):.2f} €"
