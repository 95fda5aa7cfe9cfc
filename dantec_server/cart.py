"""Local shopping cart."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional, Union

from .models import CartItem, CartSummary, Product
from .pricing import line_total

logger = logging.getLogger(__name__)

CartListener = Callable[[CartSummary], None]


class CartStore:
    """
    Authoritative in-memory cart, one entry per line in insertion order.

    Local additions merge into the first line holding the same product id.
    Server snapshots are kept line for line, since every line of one open
    order carries that order's id. Mutations are synchronous and never touch
    the network. After each one the store recomputes its summary and hands it
    to every subscribed listener. The store is not thread-safe; callers
    serialise mutations.
    """

    def __init__(self) -> None:
        self._lines: list[CartItem] = []
        self._listeners: list[CartListener] = []

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """
        Register a listener called with a fresh summary after every change.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        summary = self.summary()
        for listener in list(self._listeners):
            try:
                listener(summary)
            except Exception as e:
                logger.error(f"Cart listener failed: {e}", exc_info=True)

    def _find(self, product_id: int) -> Optional[CartItem]:
        for item in self._lines:
            if item.product.id == product_id:
                return item
        return None

    @property
    def items(self) -> list[CartItem]:
        """Copies of the cart lines in insertion order."""
        return [item.model_copy() for item in self._lines]

    def get(self, product_id: int) -> Optional[CartItem]:
        item = self._find(product_id)
        return item.model_copy() if item else None

    def __contains__(self, product_id: object) -> bool:
        return any(item.product.id == product_id for item in self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def add(self, product: Product, quantity: int = 1) -> None:
        """Add ``quantity`` of ``product``, merging with an existing line."""
        if quantity <= 0:
            raise ValueError(f"Quantity to add must be positive, got {quantity}")
        existing = self._find(product.id)
        if existing is not None:
            existing.quantity += quantity
        else:
            self._lines.append(CartItem(product=product, quantity=quantity))
        logger.debug(f"Cart: added {quantity} x {product.id}")
        self._notify()

    def set_quantity(self, product: Union[Product, int], quantity: int) -> None:
        """Replace the quantity of a line; zero or less removes it. Unknown lines are ignored."""
        product_id = product if isinstance(product, int) else product.id
        existing = self._find(product_id)
        if existing is None:
            return
        if quantity <= 0:
            self._lines.remove(existing)
        else:
            existing.quantity = quantity
        self._notify()

    def remove(self, product: Union[Product, int]) -> None:
        product_id = product if isinstance(product, int) else product.id
        existing = self._find(product_id)
        if existing is not None:
            self._lines.remove(existing)
            self._notify()

    def clear(self) -> None:
        self._lines.clear()
        self._notify()

    def replace_with(self, items: Iterable[CartItem]) -> None:
        """
        Swap the whole content for ``items`` (e.g. a server snapshot).

        Each item becomes its own line, in the given order. Items sharing a
        product id are not merged.
        """
        self._lines = [item.model_copy() for item in items if item.quantity > 0]
        self._notify()

    def total(self, now: Optional[datetime] = None) -> Decimal:
        if now is None:
            now = datetime.now()
        return sum((line_total(item, now) for item in self._lines), Decimal("0"))

    def item_count(self) -> int:
        return sum(item.quantity for item in self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def summary(self, now: Optional[datetime] = None) -> CartSummary:
        return CartSummary(
            item_count=self.item_count(),
            line_count=len(self._lines),
            total=self.total(now),
            is_empty=self.is_empty(),
        )
