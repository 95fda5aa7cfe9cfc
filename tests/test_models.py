"""Tests for API payload decoding."""

from datetime import datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from dantec_server.models import (
    AddProductRequest,
    CartItem,
    CartLine,
    Order,
    Product,
    ProductImage,
    Promotion,
    ReservationRequest,
    TimeSlot,
    parse_datetime,
)


class TestProductDecoding:
    """Tests for Product payloads."""

    def test_field_names_match_ignoring_case(self):
        product = Product.model_validate(
            {
                "ID": 3,
                "NOMPRODUIT": "Baguette",
                "Prix": 1.5,
                "QuantiteDisponible": 12,
                "lespromos": [{"id": 1, "dateDebut": "2026-01-01", "dateFin": "2026-02-01", "prix": 1}],
            }
        )

        assert product.id == 3
        assert product.name == "Baguette"
        assert product.price == Decimal("1.5")
        assert product.available_quantity == 12
        assert len(product.promotions) == 1

    def test_null_collections_decode_as_empty(self):
        product = Product.model_validate(
            {"id": 1, "nomProduit": None, "prix": 2, "lesImages": None, "lesPromos": None}
        )

        assert product.name == ""
        assert product.images == []
        assert product.promotions == []

    def test_negative_price_is_rejected(self):
        with pytest.raises(ValidationError):
            Product(id=1, name="x", price=Decimal("-1"))

    def test_clean_description_strips_markup(self):
        product = Product(id=1, description="<p>Pain&nbsp;frais</p>\r\nau levain\n")

        assert product.clean_description == "Pain frais au levain"

    def test_image_url_is_resolved_against_host(self):
        assert ProductImage(url="/img/a.png").absolute_url("http://host/") == "http://host/img/a.png"
        assert ProductImage(url="https://cdn/a.png").absolute_url("http://host") == "https://cdn/a.png"
        assert ProductImage(url=None).absolute_url("http://host") == ""


class TestPromotionDates:
    """Tests for promotion windows."""

    def test_unparseable_dates_collapse_to_minimum(self):
        promotion = Promotion(start_raw="not a date", end_raw=None, price=Decimal("1"))

        assert promotion.start == datetime.min
        assert promotion.end == datetime.min
        assert not promotion.is_active(datetime(2026, 6, 15))

    def test_window_is_inclusive(self):
        promotion = Promotion(
            start_raw="2026-06-01T00:00:00", end_raw="2026-06-30T00:00:00", price=Decimal("1")
        )

        assert promotion.is_active(datetime(2026, 6, 1))
        assert promotion.is_active(datetime(2026, 6, 30))
        assert not promotion.is_active(datetime(2026, 6, 30, 0, 0, 1))

    def test_day_first_format_is_understood(self):
        assert parse_datetime("15/06/2026 08:30:00") == datetime(2026, 6, 15, 8, 30)

    def test_non_string_dates_do_not_break_decoding(self):
        promotion = Promotion.model_validate({"id": 1, "dateDebut": {"date": "?"}, "prix": 2})

        assert promotion.start == datetime.min


class TestCartLine:
    """Tests for server cart lines."""

    def test_to_cart_item_matches_manual_item(self):
        line = CartLine.model_validate(
            {"id": 9, "nomProduit": "Lait", "quantite": 2, "prixretenu": 1.25, "total": 2.5, "imageUrl": "lait.png"}
        )
        expected = CartItem(product=Product(id=9, name="Lait", price=Decimal("1.25")), quantity=2)

        item = line.to_cart_item()

        assert item.product.id == expected.product.id
        assert item.quantity == expected.quantity
        assert item.product.price == expected.product.price
        assert item.product.images[0].url == "lait.png"


class TestOrder:
    """Tests for order snapshots."""

    def test_decoding_and_frozen_price(self):
        order = Order.model_validate(
            {
                "id": 5,
                "dateCommande": "2026-06-10",
                "montantTotal": 14,
                "etat": "Confirmée",
                "lesCommandes": [
                    {
                        "id": 1,
                        "quantite": 2,
                        "prixretenu": 7,
                        "leProduit": {"id": 3, "nomProduit": "Café", "prix": 10},
                    }
                ],
            }
        )

        assert order.items[0].subtotal == Decimal("14")
        assert order.items[0].product.price == Decimal("10")
        assert order.is_cancellable

    @pytest.mark.parametrize(
        "state,cancellable",
        [(None, True), ("", True), ("Confirmée", True), ("En cours de traitement", False), ("Livrée", False)],
    )
    def test_cancellable_states(self, state, cancellable):
        assert Order(id=1, state=state).is_cancellable is cancellable

    def test_orders_are_immutable(self):
        order = Order(id=1)

        with pytest.raises(ValidationError):
            order.state = "Livrée"


class TestTimeSlot:
    """Tests for time slot display."""

    def test_display_text(self):
        slot = TimeSlot.model_validate(
            {"id": 4, "jour": "2026-06-16T00:00:00", "heureDebut": "08:00:00", "heureFin": "2026-06-16T09:30:00"}
        )

        assert slot.formatted_day == "16/06/2026"
        assert slot.formatted_time_range == "08:00 - 09:30"
        assert slot.display_text == "16/06/2026 (08:00 - 09:30)"


class TestRequestBodies:
    """Tests for request serialisation."""

    def test_add_product_request_uses_wire_names(self):
        body = AddProductRequest(user_id=1, product_id=2, quantity=3, price=4.5)

        assert body.model_dump(by_alias=True) == {"userId": 1, "produitId": 2, "quantite": 3, "prix": 4.5}

    def test_reservation_request_uses_wire_names(self):
        body = ReservationRequest(user_id=1, day="2026-06-16", start="08:00:00", order_id=7, slot_id=4)

        assert body.model_dump(by_alias=True) == {
            "idUser": 1,
            "jour": "2026-06-16",
            "heureDebut": "08:00:00",
            "commandeId": 7,
            "id": 4,
        }
