"""Cart/order synchronisation with the Dantec Market backend."""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Callable, Optional

from .auth import AuthManager
from .cart import CartStore
from .dantec_client import DantecClient
from .models import CartLine, Order, OrderState, Product
from .pricing import effective_price

logger = logging.getLogger(__name__)

ORDER_FILTERS = ("all", "processing", "completed")


class OrderNotCancellableError(Exception):
    """Raised when an order is past the state where it can be cancelled."""

    def __init__(self, order: Order) -> None:
        super().__init__(
            f"Order {order.id} cannot be cancelled (state: {order.state or 'unset'})"
        )
        self.order = order


def ensure_cancellable(order: Order) -> None:
    """Reject cancellation unless the order is unset or confirmed."""
    if not order.is_cancellable:
        raise OrderNotCancellableError(order)


def filter_orders(orders: list[Order], status_filter: str = "all") -> list[Order]:
    """
    Filter orders for display.

    Args:
        orders: Orders to filter
        status_filter: "all", "processing" (confirmed/being prepared) or
            "completed" (prepared/delivered)
    """
    if status_filter == "processing":
        return [o for o in orders if o.state in OrderState.ACTIVE]
    if status_filter == "completed":
        return [o for o in orders if o.state in OrderState.COMPLETED]
    return list(orders)


def count_by_status(orders: list[Order]) -> dict[str, int]:
    return {
        "active": sum(1 for o in orders if o.state in OrderState.ACTIVE),
        "ready": sum(1 for o in orders if o.state == OrderState.PROCESSED),
        "delivered": sum(1 for o in orders if o.state == OrderState.DELIVERED),
    }


class OrderSyncCoordinator:
    """
    Pushes local cart changes to the server and reads back server state.

    A local mutation only happens after the remote call gating it succeeded.
    Calls touching the same product hold a per-product lock across the request
    and the local mirror, so two concurrent pushes cannot lose an update.
    """

    def __init__(
        self,
        client: DantecClient,
        cart: CartStore,
        auth_manager: AuthManager,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.client = client
        self.cart = cart
        self.auth_manager = auth_manager
        self.clock = clock
        self._cancelled_order_ids: set[int] = set()
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def cancelled_order_ids(self) -> frozenset[int]:
        """Orders cancelled by this process, hidden from listings."""
        return frozenset(self._cancelled_order_ids)

    def _current_user(self, operation: str) -> Optional[int]:
        user_id = self.auth_manager.user_id
        if user_id is None:
            logger.warning(f"{operation} skipped: not authenticated")
        return user_id

    async def push_item(self, product: Product, quantity: int, *, mirror: bool = True) -> bool:
        """
        Add a product to the server-side order at its current effective price.

        The promotional price active now is frozen on the order line. When the
        server accepts the line and ``mirror`` is set, the same quantity is
        added to the local cart.

        Returns:
            True if the server accepted the line
        """
        if quantity <= 0:
            raise ValueError(f"Quantity to push must be positive, got {quantity}")

        user_id = self._current_user("push_item")
        if user_id is None:
            return False

        async with self._locks[product.id]:
            price = effective_price(product, self.clock())
            logger.info(f"=== PUSH ITEM: product_id={product.id}, quantity={quantity}, price={price} ===")
            success = await self.client.add_product_to_order(
                user_id, product.id, quantity, float(price)
            )
            if not success:
                logger.error(f"✗ Product {product.id} was not added to the order")
                return False
            if mirror:
                self.cart.add(product, quantity)
            logger.info(f"✓ Product {product.id} added to the order")
            return True

    async def update_quantity(self, product: Product, quantity: int) -> bool:
        """Set the server-side quantity of a line, then mirror it locally (0 removes)."""
        user_id = self._current_user("update_quantity")
        if user_id is None:
            return False

        async with self._locks[product.id]:
            logger.info(f"=== UPDATE QUANTITY: product_id={product.id}, quantity={quantity} ===")
            success = await self.client.update_product_quantity(
                user_id, product.name, max(quantity, 0)
            )
            if not success:
                return False
            self.cart.set_quantity(product, quantity)
            return True

    async def remove_item(self, product: Product) -> bool:
        """Drop a line server-side (quantity 0), then locally."""
        user_id = self._current_user("remove_item")
        if user_id is None:
            return False

        async with self._locks[product.id]:
            logger.info(f"=== REMOVE ITEM: product_id={product.id} ===")
            success = await self.client.update_product_quantity(user_id, product.name, 0)
            if not success:
                return False
            self.cart.remove(product)
            return True

    async def sync_whole_cart(self) -> bool:
        """
        Push every local line, in insertion order, and stop at the first failure.

        Lines pushed before the failing one stay committed on the server; no
        rollback is attempted. The lines already are the local state, so they
        are not mirrored a second time.

        Returns:
            True only if every line was accepted
        """
        items = self.cart.items
        if not items:
            logger.info("Cart is empty, nothing to sync")
            return False

        for index, item in enumerate(items, 1):
            if not await self.push_item(item.product, item.quantity, mirror=False):
                logger.error(f"Cart sync aborted at line {index}/{len(items)}")
                return False

        logger.info(f"✓ Cart synced ({len(items)} lines)")
        return True

    async def fetch_server_cart(self) -> Optional[list[CartLine]]:
        """Server-side open order lines, or None on failure. The local cart is not touched."""
        user_id = self._current_user("fetch_server_cart")
        if user_id is None:
            return None
        return await self.client.get_current_cart_lines(user_id)

    async def reload_cart_from_server(self) -> bool:
        """Replace the local cart with the server snapshot."""
        lines = await self.fetch_server_cart()
        if lines is None:
            return False
        self.cart.replace_with(line.to_cart_item() for line in lines if line.quantity > 0)
        logger.info(f"Cart reloaded from server: {len(lines)} lines")
        return True

    async def pending_order_id(self) -> Optional[int]:
        """ID of the open order the next reservation binds to."""
        lines = await self.fetch_server_cart()
        if not lines:
            return None
        return lines[0].id

    async def fetch_orders(self) -> list[Order]:
        """All orders of the customer, minus those cancelled locally."""
        user_id = self._current_user("fetch_orders")
        if user_id is None:
            return []

        orders = await self.client.get_orders(user_id)
        if orders is None:
            return []
        visible = [o for o in orders if o.id not in self._cancelled_order_ids]
        logger.info(f"Returning {len(visible)} orders ({len(orders) - len(visible)} hidden as cancelled)")
        return visible

    async def cancel_order(self, order_id: int) -> bool:
        """
        Cancel an order server-side and remember it locally.

        Callers check the order state with ``ensure_cancellable`` first.
        """
        user_id = self._current_user("cancel_order")
        if user_id is None:
            return False

        logger.info(f"=== CANCEL ORDER: order_id={order_id} ===")
        if not await self.client.cancel_order(user_id, order_id):
            return False
        self._cancelled_order_ids.add(order_id)
        return True
