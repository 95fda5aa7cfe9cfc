"""HTTP server for Dantec Market MCP Server."""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from .orders import ORDER_FILTERS, OrderNotCancellableError, count_by_status, ensure_cancellable, filter_orders
from .pricing import discount_percentage, effective_price, has_active_promotion, line_total
from .services import StoreServices

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("dantec-http-server")


# Request/Response Models
class AddToCartRequest(BaseModel):
    product_id: int
    quantity: int = Field(1, gt=0)


class UpdateQuantityRequest(BaseModel):
    product_id: int
    quantity: int


class RemoveFromCartRequest(BaseModel):
    product_id: int


class ReserveRequest(BaseModel):
    slot_id: int
    order_id: Optional[int] = None


class CartLineResponse(BaseModel):
    product_id: int
    name: str
    quantity: int
    unit_price: Decimal
    base_price: Decimal
    on_promotion: bool
    discount_percentage: int
    total: Decimal


class CartResponse(BaseModel):
    items: list[CartLineResponse]
    item_count: int
    total: Decimal
    is_empty: bool


def _services(request: Request) -> StoreServices:
    return request.app.state.services


def _require_auth(services: StoreServices) -> None:
    if not services.auth_manager.is_authenticated():
        raise HTTPException(status_code=401, detail="Not authenticated")


def _cart_response(services: StoreServices) -> CartResponse:
    cart = services.cart
    return CartResponse(
        items=[
            CartLineResponse(
                product_id=item.product.id,
                name=item.product.name,
                quantity=item.quantity,
                unit_price=effective_price(item.product),
                base_price=item.product.price,
                on_promotion=has_active_promotion(item.product),
                discount_percentage=discount_percentage(item.product),
                total=line_total(item),
            )
            for item in cart.items
        ],
        item_count=cart.item_count(),
        total=cart.total(),
        is_empty=cart.is_empty(),
    )


def create_app(services: Optional[StoreServices] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Services to serve; built from the environment at startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown."""
        logger.info("Starting Dantec Market HTTP Server...")
        if getattr(app.state, "services", None) is None:
            app.state.services = StoreServices.from_env()

        yield

        logger.info("Shutting down Dantec Market HTTP Server...")
        await app.state.services.close()

    app = FastAPI(
        title="Dantec Market MCP Server",
        description="HTTP API for the Dantec Market cart, orders and pickup reservations",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "authenticated": _services(request).auth_manager.is_authenticated(),
        }

    @app.get("/products/top-selling")
    async def get_top_selling(request: Request):
        """Best sellers ranking."""
        products = await _services(request).client.get_top_selling_products()
        return {
            "count": len(products),
            "products": [
                {
                    **product.model_dump(mode="json"),
                    "has_promo": product.has_promo,
                    "display_price": product.display_price,
                    "discount_percentage": product.discount_percentage,
                }
                for product in products
            ],
        }

    @app.get("/categories")
    async def get_categories(request: Request):
        """Catalogue categories with their sub-categories."""
        categories = await _services(request).client.get_categories()
        return {
            "count": len(categories),
            "categories": [category.model_dump(mode="json") for category in categories],
        }

    @app.get("/favorites")
    async def get_favorites(request: Request):
        """The customer's favorite products."""
        services = _services(request)
        _require_auth(services)
        favorites = await services.favorites.fetch()
        return {
            "count": len(favorites),
            "favorites": [favorite.model_dump(mode="json") for favorite in favorites],
        }

    @app.get("/favorites/{product_id}")
    async def is_favorite(product_id: int, request: Request):
        """Whether a product is on the favorites list."""
        services = _services(request)
        _require_auth(services)
        return {"product_id": product_id, "is_favorite": await services.favorites.is_favorite(product_id)}

    @app.post("/favorites/{product_id}")
    async def add_favorite(product_id: int, request: Request):
        """Add a product to the favorites."""
        services = _services(request)
        _require_auth(services)
        return {"success": await services.favorites.add(product_id)}

    @app.delete("/favorites/{product_id}")
    async def remove_favorite(product_id: int, request: Request):
        """Remove a product from the favorites."""
        services = _services(request)
        _require_auth(services)
        return {"success": await services.favorites.remove(product_id)}

    @app.get("/cart", response_model=CartResponse)
    async def get_cart(request: Request):
        """Get the local shopping cart."""
        return _cart_response(_services(request))

    @app.post("/cart/add")
    async def add_to_cart(body: AddToCartRequest, request: Request):
        """Add a product to the order and mirror it in the cart."""
        services = _services(request)
        _require_auth(services)

        product = await services.find_product(body.product_id)
        if product is None:
            raise HTTPException(status_code=404, detail=f"Unknown product {body.product_id}")

        success = await services.orders.push_item(product, body.quantity)
        return {
            "success": success,
            "message": f"Added product {body.product_id} (quantity: {body.quantity}) to cart"
            if success
            else f"Failed to add product {body.product_id} to cart",
            "cart": _cart_response(services),
        }

    @app.post("/cart/quantity")
    async def update_quantity(body: UpdateQuantityRequest, request: Request):
        """Set the quantity of a cart line (0 removes it)."""
        services = _services(request)
        _require_auth(services)

        item = services.cart.get(body.product_id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"Product {body.product_id} is not in the cart")

        success = await services.orders.update_quantity(item.product, body.quantity)
        return {"success": success, "cart": _cart_response(services)}

    @app.post("/cart/remove")
    async def remove_from_cart(body: RemoveFromCartRequest, request: Request):
        """Remove a product from the cart."""
        services = _services(request)
        _require_auth(services)

        item = services.cart.get(body.product_id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"Product {body.product_id} is not in the cart")

        success = await services.orders.remove_item(item.product)
        return {"success": success, "cart": _cart_response(services)}

    @app.post("/cart/sync")
    async def sync_cart(request: Request):
        """Push every local line to the server."""
        services = _services(request)
        _require_auth(services)
        return {"success": await services.orders.sync_whole_cart()}

    @app.post("/cart/reload")
    async def reload_cart(request: Request):
        """Replace the local cart with the server's open order."""
        services = _services(request)
        _require_auth(services)
        success = await services.orders.reload_cart_from_server()
        return {"success": success, "cart": _cart_response(services)}

    @app.get("/orders")
    async def get_orders(request: Request, status: str = "all"):
        """Get the customer's orders."""
        services = _services(request)
        _require_auth(services)
        if status not in ORDER_FILTERS:
            raise HTTPException(status_code=400, detail=f"status must be one of {', '.join(ORDER_FILTERS)}")

        orders = filter_orders(await services.orders.fetch_orders(), status)
        return {
            "count": len(orders),
            "counts": count_by_status(orders),
            "orders": [order.model_dump(mode="json") for order in orders],
        }

    @app.post("/orders/{order_id}/cancel")
    async def cancel_order(order_id: int, request: Request):
        """Cancel an order still unset or confirmed."""
        services = _services(request)
        _require_auth(services)

        orders = await services.orders.fetch_orders()
        order = next((o for o in orders if o.id == order_id), None)
        if order is None:
            raise HTTPException(status_code=404, detail=f"Unknown order {order_id}")
        try:
            ensure_cancellable(order)
        except OrderNotCancellableError as e:
            raise HTTPException(status_code=409, detail=str(e))

        success = await services.orders.cancel_order(order_id)
        return {"success": success}

    @app.get("/slots")
    async def get_slots(request: Request):
        """List pickup slots of the current week."""
        slots = await _services(request).reservations.list_available_slots()
        return {
            "count": len(slots),
            "slots": [
                {"id": slot.id, "display": slot.display_text, **slot.model_dump(by_alias=True)}
                for slot in slots
            ],
        }

    @app.post("/reservations")
    async def reserve(body: ReserveRequest, request: Request):
        """Reserve a pickup slot, then empty the cart."""
        services = _services(request)
        _require_auth(services)

        order_id = body.order_id
        if order_id is None:
            order_id = await services.orders.pending_order_id()
        if order_id is None:
            raise HTTPException(status_code=409, detail="No open order to reserve")

        slots = await services.reservations.list_available_slots()
        slot = next((s for s in slots if s.id == body.slot_id), None)
        if slot is None:
            raise HTTPException(status_code=404, detail=f"Unknown time slot {body.slot_id}")

        success = await services.reservations.reserve(services.auth_manager.user_id, slot, order_id)
        if success:
            services.cart.clear()
        return {"success": success, "order_id": order_id, "slot": slot.display_text}

    return app


def run_http_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the HTTP server."""
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server()
