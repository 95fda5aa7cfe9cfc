"""Shared pytest fixtures for dantec_server tests."""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Union

import httpx
import pytest

from dantec_server.auth import AuthManager
from dantec_server.models import Product, Promotion
from dantec_server.services import StoreServices

NOW = datetime(2026, 6, 15, 12, 0, 0)

Route = Union[tuple[int, Any], Callable[[httpx.Request, Any], httpx.Response]]


class FakeBackend:
    """In-memory stand-in for the mobile API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: dict[str, Route] = {}
        self.requests: list[tuple[str, str, Any]] = []

    def route(self, path: str, status: int = 200, payload: Any = None) -> None:
        self.routes[path] = (status, payload)

    def route_with(self, path: str, handler: Callable[[httpx.Request, Any], httpx.Response]) -> None:
        self.routes[path] = handler

    def calls_to(self, path: str) -> list[Any]:
        return [body for _, p, body in self.requests if p == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request, body)
        status, payload = route
        return httpx.Response(status, json=payload)


def make_product(
    product_id: int,
    price: str,
    promo_price: Optional[str] = None,
    name: Optional[str] = None,
    start: str = "2026-01-01T00:00:00",
    end: str = "2026-12-31T23:59:59",
) -> Product:
    promotions = []
    if promo_price is not None:
        promotions.append(
            Promotion(
                id=product_id * 10,
                start_raw=start,
                end_raw=end,
                price=Decimal(promo_price),
                product_id=product_id,
            )
        )
    return Product(
        id=product_id,
        name=name or f"Produit {product_id}",
        price=Decimal(price),
        promotions=promotions,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def auth_manager(tmp_path) -> AuthManager:
    """Signed-in customer 42 with a throwaway session file."""
    manager = AuthManager(session_file=str(tmp_path / "session.json"))
    manager.login(42, "client@example.com")
    return manager


@pytest.fixture
def services(backend, auth_manager) -> StoreServices:
    services = StoreServices.create(
        auth_manager,
        base_url="http://api.test",
        transport=httpx.MockTransport(backend.handler),
    )
    services.orders.clock = lambda: NOW
    return services
