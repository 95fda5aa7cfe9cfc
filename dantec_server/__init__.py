"""Dantec Market MCP server: cart, orders and pickup reservations."""

__version__ = "0.1.0"
