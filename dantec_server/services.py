"""Process-wide service container."""

import logging
import os
from dataclasses import dataclass
from typing import Optional

import httpx

from .auth import AuthManager
from .cart import CartStore
from .dantec_client import DantecClient
from .favorites import FavoritesService
from .models import CartSummary, Product
from .orders import OrderSyncCoordinator
from .reservation import ReservationScheduler

logger = logging.getLogger(__name__)


@dataclass
class StoreServices:
    """
    The single instance of every service, built once by the entry point and
    handed to the surfaces that need it.
    """

    auth_manager: AuthManager
    client: DantecClient
    cart: CartStore
    orders: OrderSyncCoordinator
    reservations: ReservationScheduler
    favorites: FavoritesService

    @classmethod
    def create(
        cls,
        auth_manager: AuthManager,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "StoreServices":
        client = DantecClient(base_url=base_url, transport=transport)
        cart = CartStore()
        services = cls(
            auth_manager=auth_manager,
            client=client,
            cart=cart,
            orders=OrderSyncCoordinator(client, cart, auth_manager),
            reservations=ReservationScheduler(client),
            favorites=FavoritesService(client, auth_manager),
        )
        cart.subscribe(_log_cart_change)
        return services

    @classmethod
    def from_env(cls) -> "StoreServices":
        """
        Build the services from environment variables.

        DANTEC_BASE_URL, DANTEC_SESSION_FILE, DANTEC_USER_ID, DANTEC_USER_EMAIL
        """
        auth_manager = AuthManager(session_file=os.environ.get("DANTEC_SESSION_FILE"))

        user_id = os.environ.get("DANTEC_USER_ID")
        if user_id:
            try:
                auth_manager.login(int(user_id), os.environ.get("DANTEC_USER_EMAIL"))
            except ValueError:
                logger.error(f"DANTEC_USER_ID must be an integer, got {user_id!r}")
        elif not auth_manager.is_authenticated():
            logger.warning("No customer configured (DANTEC_USER_ID); cart and order tools will fail")

        base_url = os.environ.get("DANTEC_BASE_URL")
        if base_url:
            logger.info(f"API host configured: {base_url}")

        return cls.create(auth_manager, base_url=base_url)

    async def find_product(self, product_id: int) -> Optional[Product]:
        """Look a product up in the catalogue, falling back to the local cart."""
        for product in await self.client.get_products():
            if product.id == product_id:
                return product
        item = self.cart.get(product_id)
        return item.product if item else None

    async def close(self) -> None:
        await self.client.close()


def _log_cart_change(summary: CartSummary) -> None:
    logger.info(f"Cart changed: {summary.item_count} items, total={summary.total}")
