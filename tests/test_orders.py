"""Tests for cart/order synchronisation."""

import asyncio
from decimal import Decimal

import httpx
import pytest
from conftest import make_product

from dantec_server.models import Order
from dantec_server.orders import (
    OrderNotCancellableError,
    count_by_status,
    ensure_cancellable,
    filter_orders,
)

ADD_PATH = "/api/mobile/AjoutProduitCommandemobile"
UPDATE_PATH = "/api/mobile/MajProduitCommandemobile"
CART_PATH = "/api/mobile/commandenonvalideemobile"
ORDERS_PATH = "/api/mobile/allcommandes"
CANCEL_PATH = "/api/mobile/SupprimerCommande"


class TestPushItem:
    """Tests for pushing a product to the server-side order."""

    def test_freezes_promotional_price_and_mirrors(self, services, backend):
        backend.route(ADD_PATH)
        product = make_product(3, "10", promo_price="7")

        assert asyncio.run(services.orders.push_item(product, 2))

        assert backend.calls_to(ADD_PATH) == [{"userId": 42, "produitId": 3, "quantite": 2, "prix": 7.0}]
        assert services.cart.get(3).quantity == 2

    def test_server_rejection_leaves_cart_untouched(self, services, backend):
        backend.route(ADD_PATH, status=500, payload={"error": "stock"})

        assert not asyncio.run(services.orders.push_item(make_product(3, "10"), 1))
        assert services.cart.is_empty()

    def test_transport_error_is_reported_as_failure(self, services, backend):
        def unreachable(request, body):
            raise httpx.ConnectError("host unreachable", request=request)

        backend.route_with(ADD_PATH, unreachable)

        assert not asyncio.run(services.orders.push_item(make_product(3, "10"), 1))
        assert services.cart.is_empty()

    def test_requires_authentication(self, services, backend):
        services.auth_manager.logout()

        assert not asyncio.run(services.orders.push_item(make_product(3, "10"), 1))
        assert backend.requests == []

    def test_rejects_non_positive_quantity(self, services):
        with pytest.raises(ValueError):
            asyncio.run(services.orders.push_item(make_product(3, "10"), 0))

    def test_concurrent_pushes_for_same_product_are_not_lost(self, services, backend):
        backend.route(ADD_PATH)
        product = make_product(3, "10")

        async def push_twice():
            return await asyncio.gather(
                services.orders.push_item(product, 1),
                services.orders.push_item(product, 2),
            )

        assert asyncio.run(push_twice()) == [True, True]
        assert services.cart.get(3).quantity == 3


class TestSyncWholeCart:
    """Tests for pushing the whole cart."""

    def test_stops_at_first_failing_line(self, services, backend):
        def reject_second(request, body):
            status = 500 if body["produitId"] == 2 else 200
            return httpx.Response(status)

        backend.route_with(ADD_PATH, reject_second)
        services.cart.add(make_product(1, "10"), 1)
        services.cart.add(make_product(2, "5"), 2)
        services.cart.add(make_product(3, "4"), 3)

        assert not asyncio.run(services.orders.sync_whole_cart())

        assert [body["produitId"] for body in backend.calls_to(ADD_PATH)] == [1, 2]
        assert [(i.product.id, i.quantity) for i in services.cart.items] == [(1, 1), (2, 2), (3, 3)]

    def test_success_does_not_double_quantities(self, services, backend):
        backend.route(ADD_PATH)
        services.cart.add(make_product(1, "10"), 2)
        services.cart.add(make_product(2, "5"), 1)

        assert asyncio.run(services.orders.sync_whole_cart())

        assert len(backend.calls_to(ADD_PATH)) == 2
        assert services.cart.item_count() == 3

    def test_empty_cart_is_not_synced(self, services, backend):
        assert not asyncio.run(services.orders.sync_whole_cart())
        assert backend.requests == []


class TestQuantityUpdates:
    """Tests for server-side quantity changes."""

    def test_update_quantity_mirrors_on_success(self, services, backend):
        backend.route(UPDATE_PATH)
        product = make_product(1, "10", name="Pain")
        services.cart.add(product, 1)

        assert asyncio.run(services.orders.update_quantity(product, 4))

        assert backend.calls_to(UPDATE_PATH) == [{"userId": 42, "nomProduit": "Pain", "quantite": 4}]
        assert services.cart.get(1).quantity == 4

    def test_update_quantity_failure_keeps_local_line(self, services, backend):
        backend.route(UPDATE_PATH, status=400)
        product = make_product(1, "10")
        services.cart.add(product, 1)

        assert not asyncio.run(services.orders.update_quantity(product, 4))
        assert services.cart.get(1).quantity == 1

    def test_remove_item_sends_zero_quantity(self, services, backend):
        backend.route(UPDATE_PATH)
        product = make_product(1, "10", name="Pain")
        services.cart.add(product, 3)

        assert asyncio.run(services.orders.remove_item(product))

        assert backend.calls_to(UPDATE_PATH)[0]["quantite"] == 0
        assert services.cart.is_empty()


class TestServerCart:
    """Tests for reading the server cart."""

    LINES = [
        {"id": 11, "nomProduit": "Lait", "quantite": 2, "prixretenu": 1.5, "total": 3, "imageUrl": "a.png"},
        {"ID": 12, "NomProduit": "Oeufs", "Quantite": 1, "PrixRetenu": 3, "Total": 3, "ImageUrl": None},
    ]

    def test_fetch_server_cart_does_not_touch_local_cart(self, services, backend):
        backend.route(CART_PATH, payload=self.LINES)
        services.cart.add(make_product(1, "10"))

        lines = asyncio.run(services.orders.fetch_server_cart())

        assert [line.id for line in lines] == [11, 12]
        assert backend.calls_to(CART_PATH) == [{"userId": 42}]
        assert [i.product.id for i in services.cart.items] == [1]

    def test_fetch_server_cart_failure_returns_none(self, services, backend):
        backend.route(CART_PATH, status=503)

        assert asyncio.run(services.orders.fetch_server_cart()) is None

    def test_malformed_payload_returns_none(self, services, backend):
        backend.route_with(CART_PATH, lambda request, body: httpx.Response(200, text="<html>"))

        assert asyncio.run(services.orders.fetch_server_cart()) is None

    def test_reload_replaces_local_cart(self, services, backend):
        backend.route(CART_PATH, payload=self.LINES)
        services.cart.add(make_product(1, "10"))

        assert asyncio.run(services.orders.reload_cart_from_server())

        assert [(i.product.id, i.quantity) for i in services.cart.items] == [(11, 2), (12, 1)]
        assert services.cart.total() == Decimal("6")

    def test_reload_keeps_one_line_per_product_of_the_open_order(self, services, backend):
        backend.route(
            CART_PATH,
            payload=[
                {"id": 99, "nomProduit": "Lait", "quantite": 2, "prixretenu": 1.5},
                {"id": 99, "nomProduit": "Oeufs", "quantite": 1, "prixretenu": 3},
            ],
        )

        assert asyncio.run(services.orders.reload_cart_from_server())

        assert [(i.product.name, i.quantity) for i in services.cart.items] == [("Lait", 2), ("Oeufs", 1)]
        assert services.cart.total() == Decimal("6")
        assert asyncio.run(services.orders.pending_order_id()) == 99

    def test_reload_failure_keeps_local_cart(self, services, backend):
        backend.route(CART_PATH, status=500)
        services.cart.add(make_product(1, "10"))

        assert not asyncio.run(services.orders.reload_cart_from_server())
        assert 1 in services.cart

    def test_pending_order_id_is_first_line(self, services, backend):
        backend.route(CART_PATH, payload=self.LINES)

        assert asyncio.run(services.orders.pending_order_id()) == 11


class TestOrders:
    """Tests for order listing and cancellation."""

    ORDERS = [
        {"id": 5, "etat": "Confirmée", "montantTotal": 10},
        {"id": 6, "etat": "Traitée", "montantTotal": 20},
        {"id": 7, "etat": None, "montantTotal": 30},
    ]

    def test_cancel_twice_is_idempotent(self, services, backend):
        backend.route(CANCEL_PATH)

        first = asyncio.run(services.orders.cancel_order(5))
        second = asyncio.run(services.orders.cancel_order(5))

        assert first and second
        assert len(backend.calls_to(CANCEL_PATH)) == 2
        assert services.orders.cancelled_order_ids == frozenset({5})

    def test_failed_cancel_is_not_remembered(self, services, backend):
        backend.route(CANCEL_PATH, status=500)

        assert not asyncio.run(services.orders.cancel_order(5))
        assert services.orders.cancelled_order_ids == frozenset()

    def test_cancelled_orders_are_hidden_from_listing(self, services, backend):
        backend.route(CANCEL_PATH)
        backend.route(ORDERS_PATH, payload=self.ORDERS)

        asyncio.run(services.orders.cancel_order(5))
        orders = asyncio.run(services.orders.fetch_orders())

        assert [o.id for o in orders] == [6, 7]

    def test_fetch_orders_failure_returns_empty_list(self, services, backend):
        backend.route(ORDERS_PATH, status=500)

        assert asyncio.run(services.orders.fetch_orders()) == []

    def test_invalid_records_are_skipped(self, services, backend):
        backend.route(ORDERS_PATH, payload=[{"etat": "Livrée"}, {"id": 8, "etat": "Livrée"}])

        assert [o.id for o in asyncio.run(services.orders.fetch_orders())] == [8]

    def test_cancellation_gate(self):
        ensure_cancellable(Order(id=1, state=None))
        ensure_cancellable(Order(id=2, state="Confirmée"))

        with pytest.raises(OrderNotCancellableError):
            ensure_cancellable(Order(id=3, state="En cours de traitement"))

    def test_filters_and_counters(self):
        orders = [
            Order(id=1, state="Confirmée"),
            Order(id=2, state="En cours de traitement"),
            Order(id=3, state="Traitée"),
            Order(id=4, state="Livrée"),
            Order(id=5, state="-"),
        ]

        assert [o.id for o in filter_orders(orders, "processing")] == [1, 2, 5]
        assert [o.id for o in filter_orders(orders, "completed")] == [3, 4]
        assert len(filter_orders(orders)) == 5
        assert count_by_status(orders) == {"active": 3, "ready": 1, "delivered": 1}
