"""Dantec Market mobile API client."""

import logging
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .models import (
    AddProductRequest,
    CancelOrderRequest,
    CartLine,
    Category,
    FavoriteItem,
    FavoriteRequest,
    Order,
    Product,
    ReservationRequest,
    TimeSlot,
    TopSellingProduct,
    UpdateQuantityRequest,
    UserRequest,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class DantecClient:
    """
    Client for the Dantec Market mobile REST API.

    Every call is attempted exactly once. Transport errors and non-2xx
    statuses are logged and reported as ``False`` / ``None`` / ``[]``;
    nothing is raised to the caller.
    """

    BASE_URL = "http://213.130.144.159"

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the API client.

        Args:
            base_url: API host (defaults to the production host)
            transport: Optional httpx transport, mainly for tests
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=30.0,
            transport=transport,
            headers={
                "Accept": "application/json",
                "User-Agent": "dantec-mcp-server/0.1",
            },
        )

    async def _send(
        self, method: str, path: str, payload: Optional[BaseModel] = None
    ) -> Optional[httpx.Response]:
        """Issue one request; return the response only when it is a 2xx."""
        body = payload.model_dump(by_alias=True, mode="json") if payload is not None else None
        try:
            response = await self.client.request(method, path, json=body)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            return None

        if not response.is_success:
            logger.error(f"{method} {path} returned {response.status_code}: {response.text[:500]}")
            return None

        logger.info(f"{method} {path}: status={response.status_code}")
        return response

    def _decode_list(self, response: httpx.Response, model: type[ModelT]) -> Optional[list[ModelT]]:
        """Decode a JSON array, skipping records that do not fit ``model``."""
        try:
            data: Any = response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from {response.request.url.path}: {e}")
            return None

        if not isinstance(data, list):
            logger.error(f"Expected a list from {response.request.url.path}, got {type(data).__name__}")
            return None

        records = []
        for item in data:
            try:
                records.append(model.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Failed to parse {model.__name__}: {e}")
                continue
        return records

    async def get_products(self) -> list[Product]:
        """Fetch the product catalogue with promotions."""
        response = await self._send("GET", "/api/mobile/produits")
        if response is None:
            return []
        return self._decode_list(response, Product) or []

    async def get_top_selling_products(self) -> list[TopSellingProduct]:
        """Fetch the best sellers ranking."""
        response = await self._send("GET", "/api/mobile/lesplusvendus")
        if response is None:
            return []
        return self._decode_list(response, TopSellingProduct) or []

    async def get_categories(self) -> list[Category]:
        """Fetch the top-level categories with their sub-categories."""
        response = await self._send("GET", "/api/mobile/allcategoriesParent")
        if response is None:
            return []
        return self._decode_list(response, Category) or []

    async def get_favorites(self, user_id: int) -> list[FavoriteItem]:
        """Fetch the customer's favorite products."""
        response = await self._send(
            "POST", "/api/mobile/getListeFavorisMobile", UserRequest(user_id=user_id)
        )
        if response is None:
            return []
        return self._decode_list(response, FavoriteItem) or []

    async def add_favorite(self, user_id: int, product_id: int) -> bool:
        request = FavoriteRequest(user_id=user_id, product_id=product_id)
        return await self._send("POST", "/api/mobile/AjoutFavoriMobile", request) is not None

    async def remove_favorite(self, user_id: int, product_id: int) -> bool:
        request = FavoriteRequest(user_id=user_id, product_id=product_id)
        return await self._send("POST", "/api/mobile/SupprimerFavoriMobile", request) is not None

    async def add_product_to_order(
        self, user_id: int, product_id: int, quantity: int, price: float
    ) -> bool:
        """
        Add a product line to the customer's open order.

        Args:
            user_id: Customer ID
            product_id: Product ID
            quantity: Quantity to add
            price: Unit price to freeze on the order line

        Returns:
            True if the server accepted the line
        """
        request = AddProductRequest(
            user_id=user_id, product_id=product_id, quantity=quantity, price=price
        )
        return await self._send("POST", "/api/mobile/AjoutProduitCommandemobile", request) is not None

    async def update_product_quantity(self, user_id: int, product_name: str, quantity: int) -> bool:
        """Set the quantity of an open order line; 0 removes it."""
        request = UpdateQuantityRequest(user_id=user_id, product_name=product_name, quantity=quantity)
        return await self._send("POST", "/api/mobile/MajProduitCommandemobile", request) is not None

    async def get_current_cart_lines(self, user_id: int) -> Optional[list[CartLine]]:
        """Fetch the lines of the customer's open (not yet validated) order."""
        response = await self._send(
            "POST", "/api/mobile/commandenonvalideemobile", UserRequest(user_id=user_id)
        )
        if response is None:
            return None
        return self._decode_list(response, CartLine)

    async def get_orders(self, user_id: int) -> Optional[list[Order]]:
        """Fetch every order of the customer."""
        response = await self._send("POST", "/api/mobile/allcommandes", UserRequest(user_id=user_id))
        if response is None:
            return None
        return self._decode_list(response, Order)

    async def cancel_order(self, user_id: int, order_id: int) -> bool:
        request = CancelOrderRequest(user_id=user_id, order_id=order_id)
        return await self._send("POST", "/api/mobile/SupprimerCommande", request) is not None

    async def get_time_slots(self) -> list[TimeSlot]:
        """Fetch the pickup slots of the current week."""
        response = await self._send("GET", "/api/mobile/semaine-courante")
        if response is None:
            return []
        slots = self._decode_list(response, TimeSlot) or []
        for slot in slots:
            logger.debug(f"TimeSlot: id={slot.id}, display={slot.display_text}")
        return slots

    async def reserve(self, request: ReservationRequest) -> bool:
        """Book a pickup slot for an order."""
        logger.info(f"Sending reservation request: {request.model_dump(by_alias=True)}")
        return await self._send("POST", "/api/mobile/reservermobile", request) is not None

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
