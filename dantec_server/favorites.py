"""Favorite products of the signed-in customer."""

import logging
from typing import Optional

from .auth import AuthManager
from .dantec_client import DantecClient
from .models import FavoriteItem

logger = logging.getLogger(__name__)


class FavoritesService:
    """
    Reads and edits the customer's favorites list on the server.

    Nothing is cached: every call reflects the server state. Without a
    signed-in customer the calls return their failure value and send nothing.
    """

    def __init__(self, client: DantecClient, auth_manager: AuthManager) -> None:
        self.client = client
        self.auth_manager = auth_manager

    def _current_user(self, operation: str) -> Optional[int]:
        user_id = self.auth_manager.user_id
        if user_id is None:
            logger.warning(f"{operation} skipped: not authenticated")
        return user_id

    async def fetch(self) -> list[FavoriteItem]:
        user_id = self._current_user("list_favorites")
        if user_id is None:
            return []
        favorites = await self.client.get_favorites(user_id)
        logger.info(f"Retrieved {len(favorites)} favorites")
        return favorites

    async def add(self, product_id: int) -> bool:
        user_id = self._current_user("add_favorite")
        if user_id is None:
            return False
        success = await self.client.add_favorite(user_id, product_id)
        if success:
            logger.info(f"✓ Product {product_id} added to favorites")
        else:
            logger.error(f"✗ Failed to add product {product_id} to favorites")
        return success

    async def remove(self, product_id: int) -> bool:
        user_id = self._current_user("remove_favorite")
        if user_id is None:
            return False
        success = await self.client.remove_favorite(user_id, product_id)
        if success:
            logger.info(f"✓ Product {product_id} removed from favorites")
        else:
            logger.error(f"✗ Failed to remove product {product_id} from favorites")
        return success

    async def is_favorite(self, product_id: int) -> bool:
        """True when ``product_id`` is on the list; a failed fetch counts as not."""
        return any(item.id == product_id for item in await self.fetch())
