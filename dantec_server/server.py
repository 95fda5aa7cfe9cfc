"""MCP Server for Dantec Market."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

from .models import Category, Order, TimeSlot, TopSellingProduct
from .orders import ORDER_FILTERS, OrderNotCancellableError, count_by_status, ensure_cancellable, filter_orders
from .pricing import discount_percentage, effective_price, format_price, has_active_promotion, line_total
from .services import StoreServices

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("dantec-mcp-server")

NOT_AUTHENTICATED = "Error: Not authenticated. Please configure DANTEC_USER_ID."


def parse_int(value: Any, name: str) -> int:
    """Parse a tool argument as an integer, rejecting anything else."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValueError(f"{name} must be an integer, got {value!r}")


def render_cart(services: StoreServices) -> str:
    cart = services.cart
    if cart.is_empty():
        return "Your cart is empty"

    lines = [f"Shopping Cart ({cart.item_count()} items):\n"]
    for item in cart.items:
        product = item.product
        line = f"  - [{product.id}] {product.name}: {item.quantity} x {format_price(product)} = {line_total(item):.2f} €"
        if has_active_promotion(product):
            line += f" (-{discount_percentage(product)}%)"
        lines.append(line)
    lines.append(f"\nTotal: {cart.total():.2f} €")
    return "\n".join(lines)


def render_orders(orders: list[Order]) -> str:
    counts = count_by_status(orders)
    lines = [
        f"Found {len(orders)} order(s) "
        f"(active: {counts['active']}, ready: {counts['ready']}, delivered: {counts['delivered']}):"
    ]
    for order in orders:
        lines.append(f"\nOrder #{order.id}")
        lines.append(f"   Status: {order.state or 'unset'}")
        placed_at = order.placed_at
        if placed_at != datetime.min:
            lines.append(f"   Date: {placed_at.strftime('%d/%m/%Y %H:%M')}")
        else:
            lines.append(f"   Date: {order.date or 'unknown'}")
        if order.planning_details:
            lines.append(f"   Slot: {order.planning_details}")
        lines.append(f"   Amount: {order.total:.2f} €")
        for item in order.items:
            name = item.product.name if item.product else f"item {item.id}"
            lines.append(f"     - {name}: {item.quantity} x {item.retained_price:.2f} €")
    return "\n".join(lines)


def render_top_selling(products: list[TopSellingProduct]) -> str:
    lines = [f"Best sellers ({len(products)}):"]
    for rank, product in enumerate(products, 1):
        line = f"  {rank}. [{product.id}] {product.product_name}: {product.display_price:.2f} €"
        if product.has_promo:
            line += f" (-{product.discount_percentage}%, was {product.price:.2f} €)"
            if product.promo_category_name:
                line += f" [{product.promo_category_name}]"
        if product.quantity_sold:
            line += f", sold: {product.quantity_sold}"
        lines.append(line)
    return "\n".join(lines)


def render_categories(categories: list[Category], depth: int = 0) -> list[str]:
    lines = []
    for category in categories:
        lines.append(f"{'  ' * (depth + 1)}- [{category.id}] {category.name}")
        lines.extend(render_categories(category.subcategories, depth + 1))
    return lines


def render_slots(slots: list[TimeSlot]) -> str:
    lines = [f"Found {len(slots)} time slot(s):"]
    for slot in slots:
        lines.append(f"  - [{slot.id}] {slot.display_text}")
    return "\n".join(lines)


TOOLS = [
    Tool(
        name="dantec_list_products",
        description="List catalogue products with their current (promotional) price",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Optional name filter"},
            },
        },
    ),
    Tool(
        name="dantec_list_top_selling",
        description="List the best selling products with their promotional price",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="dantec_list_categories",
        description="List the catalogue categories and their sub-categories",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="dantec_list_favorites",
        description="List the customer's favorite products",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="dantec_add_favorite",
        description="Add a product to the customer's favorites",
        inputSchema={
            "type": "object",
            "properties": {
                "product_id": {"type": "integer", "description": "Product ID"},
            },
            "required": ["product_id"],
        },
    ),
    Tool(
        name="dantec_remove_favorite",
        description="Remove a product from the customer's favorites",
        inputSchema={
            "type": "object",
            "properties": {
                "product_id": {"type": "integer", "description": "Product ID"},
            },
            "required": ["product_id"],
        },
    ),
    Tool(
        name="dantec_get_cart",
        description="Show the local shopping cart with totals",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="dantec_add_to_cart",
        description="Add a product to the order at its current price and mirror it in the cart",
        inputSchema={
            "type": "object",
            "properties": {
                "product_id": {"type": "integer", "description": "Product ID from the catalogue"},
                "quantity": {"type": "integer", "description": "Quantity to add (default: 1)", "default": 1},
            },
            "required": ["product_id"],
        },
    ),
    Tool(
        name="dantec_update_quantity",
        description="Set the quantity of a cart line (0 removes it)",
        inputSchema={
            "type": "object",
            "properties": {
                "product_id": {"type": "integer", "description": "Product ID in the cart"},
                "quantity": {"type": "integer", "description": "New quantity"},
            },
            "required": ["product_id", "quantity"],
        },
    ),
    Tool(
        name="dantec_remove_from_cart",
        description="Remove a product from the cart and the open order",
        inputSchema={
            "type": "object",
            "properties": {
                "product_id": {"type": "integer", "description": "Product ID to remove"},
            },
            "required": ["product_id"],
        },
    ),
    Tool(
        name="dantec_sync_cart",
        description="Push every local cart line to the server (stops at the first failure)",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="dantec_reload_cart",
        description="Replace the local cart with the server's open order",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="dantec_list_orders",
        description="List the customer's orders",
        inputSchema={
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "enum": list(ORDER_FILTERS),
                    "description": "Filter: all, processing or completed (default: all)",
                    "default": "all",
                },
            },
        },
    ),
    Tool(
        name="dantec_cancel_order",
        description="Cancel an order that is still unset or confirmed",
        inputSchema={
            "type": "object",
            "properties": {
                "order_id": {"type": "integer", "description": "Order ID"},
            },
            "required": ["order_id"],
        },
    ),
    Tool(
        name="dantec_list_time_slots",
        description="List the pickup time slots of the current week",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="dantec_reserve",
        description="Reserve a pickup slot for the open order, then empty the cart",
        inputSchema={
            "type": "object",
            "properties": {
                "slot_id": {"type": "integer", "description": "Time slot ID"},
                "order_id": {
                    "type": "integer",
                    "description": "Order ID (default: the open order)",
                },
            },
            "required": ["slot_id"],
        },
    ),
]


async def handle_tool(services: StoreServices, name: str, arguments: Optional[dict[str, Any]]) -> str:
    """Run one tool and return its text result."""
    arguments = arguments or {}
    auth_manager = services.auth_manager

    if name == "dantec_list_products":
        products = await services.client.get_products()
        query = (arguments.get("query") or "").lower()
        if query:
            products = [p for p in products if query in p.name.lower()]
        if not products:
            return "No products found"
        lines = [f"Found {len(products)} product(s):\n"]
        for i, product in enumerate(products, 1):
            lines.append(f"\n{i}. {product.name}")
            lines.append(f"   ID: {product.id}")
            lines.append(f"   Price: {format_price(product)}")
            if has_active_promotion(product):
                lines.append(f"   Promotion: -{discount_percentage(product)}% (was {product.price:.2f} €)")
            lines.append(f"   Available: {product.available_quantity}")
        return "\n".join(lines)

    if name == "dantec_list_top_selling":
        top_selling = await services.client.get_top_selling_products()
        if not top_selling:
            return "No best sellers available"
        return render_top_selling(top_selling)

    if name == "dantec_list_categories":
        categories = await services.client.get_categories()
        if not categories:
            return "No categories found"
        return "Categories:\n" + "\n".join(render_categories(categories))

    if name == "dantec_get_cart":
        return render_cart(services)

    if not auth_manager.is_authenticated() and name != "dantec_list_time_slots":
        return NOT_AUTHENTICATED

    if name == "dantec_list_favorites":
        favorites = await services.favorites.fetch()
        if not favorites:
            return "No favorites yet"
        lines = [f"Favorites ({len(favorites)}):"]
        for favorite in favorites:
            lines.append(f"  - [{favorite.id}] {favorite.product_name}: {favorite.price:.2f} €")
        return "\n".join(lines)

    if name in ("dantec_add_favorite", "dantec_remove_favorite"):
        product_id = parse_int(arguments.get("product_id"), "product_id")
        if name == "dantec_add_favorite":
            if await services.favorites.add(product_id):
                return f"✅ Product {product_id} added to favorites"
            return f"❌ Could not add product {product_id} to favorites"
        if await services.favorites.remove(product_id):
            return f"✅ Product {product_id} removed from favorites"
        return f"❌ Could not remove product {product_id} from favorites"

    if name == "dantec_add_to_cart":
        product_id = parse_int(arguments.get("product_id"), "product_id")
        quantity = parse_int(arguments.get("quantity", 1), "quantity")
        product = await services.find_product(product_id)
        if product is None:
            return f"Error: Unknown product {product_id}"
        if await services.orders.push_item(product, quantity):
            return (
                f"✅ Added {quantity} x {product.name} at {effective_price(product):.2f} €\n\n"
                + render_cart(services)
            )
        return f"❌ Failed to add product {product_id} to the order"

    if name in ("dantec_update_quantity", "dantec_remove_from_cart"):
        product_id = parse_int(arguments.get("product_id"), "product_id")
        item = services.cart.get(product_id)
        if item is None:
            return f"Error: Product {product_id} is not in the cart"
        if name == "dantec_remove_from_cart":
            success = await services.orders.remove_item(item.product)
        else:
            quantity = parse_int(arguments.get("quantity"), "quantity")
            success = await services.orders.update_quantity(item.product, quantity)
        if success:
            return "✅ Cart updated\n\n" + render_cart(services)
        return f"❌ Failed to update product {product_id}"

    if name == "dantec_sync_cart":
        if await services.orders.sync_whole_cart():
            return "✅ Cart synced with the server"
        return "❌ Cart sync failed (empty cart or a line was rejected)"

    if name == "dantec_reload_cart":
        if await services.orders.reload_cart_from_server():
            return render_cart(services)
        return "❌ Could not load the cart from the server"

    if name == "dantec_list_orders":
        status_filter = arguments.get("status", "all")
        if status_filter not in ORDER_FILTERS:
            return f"Error: status must be one of {', '.join(ORDER_FILTERS)}"
        orders = filter_orders(await services.orders.fetch_orders(), status_filter)
        if not orders:
            return "No orders found"
        return render_orders(orders)

    if name == "dantec_cancel_order":
        order_id = parse_int(arguments.get("order_id"), "order_id")
        orders = await services.orders.fetch_orders()
        order = next((o for o in orders if o.id == order_id), None)
        if order is None:
            return f"Error: Unknown order {order_id}"
        ensure_cancellable(order)
        if await services.orders.cancel_order(order_id):
            return f"✅ Order {order_id} cancelled"
        return f"❌ Could not cancel order {order_id}"

    if name == "dantec_list_time_slots":
        slots = await services.reservations.list_available_slots()
        if not slots:
            return "No time slots available"
        return render_slots(slots)

    if name == "dantec_reserve":
        slot_id = parse_int(arguments.get("slot_id"), "slot_id")
        if arguments.get("order_id") is not None:
            order_id: Optional[int] = parse_int(arguments["order_id"], "order_id")
        else:
            order_id = await services.orders.pending_order_id()
        if order_id is None:
            return "Error: Your cart is empty, there is no order to reserve"

        slots = await services.reservations.list_available_slots()
        slot = next((s for s in slots if s.id == slot_id), None)
        if slot is None:
            return f"Error: Unknown time slot {slot_id}"

        if await services.reservations.reserve(auth_manager.user_id, slot, order_id):
            services.cart.clear()
            return f"✅ Order {order_id} reserved for {slot.formatted_day} at {slot.start.strftime('%H:%M')}"
        return "❌ Reservation failed. Please try again later."

    return f"Unknown tool: {name}"


def create_server(services: StoreServices) -> Server:
    """Create the MCP server bound to ``services``."""
    app = Server("dantec-mcp-server")

    @app.list_resources()
    async def list_resources() -> list[Resource]:
        """List available resources."""
        return [
            Resource(
                uri=AnyUrl("dantec://cart"),
                name="Shopping Cart",
                mimeType="application/json",
                description="Current local shopping cart contents",
            )
        ]

    @app.read_resource()
    async def read_resource(uri: AnyUrl) -> str:
        """Read a resource by URI."""
        if str(uri) == "dantec://cart":
            return services.cart.summary().model_dump_json(indent=2)
        raise ValueError(f"Unknown resource: {uri}")

    @app.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return TOOLS

    @app.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        """Handle tool calls."""
        try:
            text = await handle_tool(services, name, arguments)
        except OrderNotCancellableError as e:
            text = f"❌ {e}"
        except Exception as e:
            logger.error(f"Error executing tool {name}: {e}", exc_info=True)
            text = f"Error: {str(e)}"
        return [TextContent(type="text", text=text)]

    return app


async def main() -> None:
    """Main entry point."""
    services = StoreServices.from_env()
    app = create_server(services)

    logger.info("Starting Dantec Market MCP Server...")

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await services.close()


if __name__ == "__main__":
    asyncio.run(main())
