"""Data models for Dantec Market entities."""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%H:%M:%S",
    "%H:%M",
)


def parse_datetime(raw: Optional[str]) -> datetime:
    """
    Parse a backend date/time string.

    Unparseable or missing values collapse to ``datetime.min``. Aware values
    are converted to local naive time so they compare with ``datetime.now()``.
    """
    if not raw:
        return datetime.min

    text = raw.strip().replace("Z", "+00:00")
    value: Optional[datetime] = None
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        for fmt in _DATETIME_FORMATS:
            try:
                value = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if value is None:
        return datetime.min

    if value.tzinfo is not None:
        try:
            value = value.astimezone().replace(tzinfo=None)
        except (OverflowError, ValueError):
            return datetime.min
    return value


class ApiModel(BaseModel):
    """Base for backend payloads; field names are matched ignoring case."""

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _match_keys_ignoring_case(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        keys: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            key = field.alias or name
            keys[name.lower()] = key
            keys[key.lower()] = key
        return {keys.get(str(k).lower(), k): v for k, v in data.items()}


class ProductImage(ApiModel):
    """Represents a product picture."""

    id: int = 0
    url: str = ""

    @field_validator("url", mode="before")
    @classmethod
    def _empty_url(cls, value: Any) -> Any:
        return value or ""

    def absolute_url(self, base_url: str) -> str:
        """Resolve the picture path against the API host."""
        if not self.url:
            return ""
        if self.url.startswith("http"):
            return self.url
        return f"{base_url.rstrip('/')}/{self.url.lstrip('/')}"


class PromoCategory(ApiModel):
    """Represents a promotion category (label shown next to the offer)."""

    id: int = 0
    name: str = Field("", alias="nom")
    promotion_ids: list[Any] = Field(default_factory=list, alias="lesPromos")

    @field_validator("promotion_ids", mode="before")
    @classmethod
    def _empty_list(cls, value: Any) -> Any:
        return value or []


class Promotion(ApiModel):
    """Represents a time-boxed promotional price for one product."""

    id: int = 0
    start_raw: Optional[str] = Field(None, alias="dateDebut", description="Start as sent by the API")
    end_raw: Optional[str] = Field(None, alias="dateFin", description="End as sent by the API")
    price: Decimal = Field(Decimal("0"), alias="prix", description="Discounted price in EUR")
    product_id: int = Field(0, alias="leProduit")
    category: Optional[PromoCategory] = Field(None, alias="laCategoriePromo")

    @field_validator("start_raw", "end_raw", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def start(self) -> datetime:
        return parse_datetime(self.start_raw)

    @property
    def end(self) -> datetime:
        return parse_datetime(self.end_raw)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """True when ``now`` falls within [start, end], both ends included."""
        if now is None:
            now = datetime.now()
        return self.start <= now <= self.end


class Product(ApiModel):
    """Represents a product of the catalogue."""

    id: int
    name: str = Field("", alias="nomProduit")
    description: str = ""
    price: Decimal = Field(Decimal("0"), ge=0, alias="prix", description="Base price in EUR")
    available_quantity: int = Field(0, alias="quantiteDisponible")
    short_description: str = Field("", alias="descriptioncourte")
    images: list[ProductImage] = Field(default_factory=list, alias="lesImages")
    promotions: list[Promotion] = Field(default_factory=list, alias="lesPromos")

    @field_validator("name", "description", "short_description", mode="before")
    @classmethod
    def _empty_text(cls, value: Any) -> Any:
        return value or ""

    @field_validator("images", "promotions", mode="before")
    @classmethod
    def _empty_list(cls, value: Any) -> Any:
        return value or []

    @field_validator("price", mode="before")
    @classmethod
    def _missing_price(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def clean_description(self) -> str:
        """Description with HTML markup and line breaks removed."""
        text = re.sub(r"<[^>]*>", "", self.description)
        text = text.replace("&nbsp;", " ").replace("\r\n", " ").replace("\n", " ")
        return text.strip()


class CartItem(BaseModel):
    """Represents a line of the local cart."""

    product: Product
    quantity: int = Field(gt=0, description="Quantity of the product")


class CartSummary(BaseModel):
    """Derived cart figures handed to cart listeners."""

    item_count: int = 0
    line_count: int = 0
    total: Decimal = Decimal("0")
    is_empty: bool = True


class CartLine(ApiModel):
    """Represents a cart line as reported by the server (not yet validated order)."""

    id: int
    product_name: str = Field("", alias="nomProduit")
    quantity: int = Field(0, alias="quantite")
    retained_price: Decimal = Field(Decimal("0"), alias="prixretenu")
    total: Decimal = Decimal("0")
    image_url: str = Field("", alias="imageUrl")

    @field_validator("product_name", "image_url", mode="before")
    @classmethod
    def _empty_text(cls, value: Any) -> Any:
        return value or ""

    def to_cart_item(self) -> CartItem:
        """Convert to a local cart line priced at the frozen price."""
        return CartItem(
            product=Product(
                id=self.id,
                name=self.product_name,
                price=self.retained_price,
                images=[ProductImage(url=self.image_url)],
            ),
            quantity=self.quantity,
        )


class Category(ApiModel):
    """Represents a catalogue category with its sub-categories."""

    id: int = 0
    name: str = Field("", alias="nom")
    subcategories: list["Category"] = Field(default_factory=list, alias="lescategories")
    products: list[Product] = Field(default_factory=list, alias="lesProduits")

    @field_validator("name", mode="before")
    @classmethod
    def _empty_text(cls, value: Any) -> Any:
        return value or ""

    @field_validator("subcategories", "products", mode="before")
    @classmethod
    def _empty_list(cls, value: Any) -> Any:
        return value or []


class FavoriteItem(ApiModel):
    """Represents a product on the customer's favorites list."""

    id: int
    product_name: str = Field("", alias="nomProduit")
    price: Decimal = Field(Decimal("0"), alias="prix")
    image_url: str = Field("", alias="imageUrl")

    @field_validator("product_name", "image_url", mode="before")
    @classmethod
    def _empty_text(cls, value: Any) -> Any:
        return value or ""

    @field_validator("price", mode="before")
    @classmethod
    def _missing_price(cls, value: Any) -> Any:
        return 0 if value is None else value


class TopSellingProduct(ApiModel):
    """Represents an entry of the best sellers ranking."""

    id: int
    product_name: str = Field("", alias="nomProduit")
    short_description: str = Field("", alias="descriptioncourte")
    price: Decimal = Field(Decimal("0"), alias="prix", description="Base price in EUR")
    quantity_sold: str = Field("", alias="quantite_vendue", description="Sold quantity, sent as text")
    image: str = ""
    promo_price: Optional[Decimal] = Field(None, alias="prixpromo")
    promo_category_name: str = Field("", alias="nomCategoriePromo")

    @field_validator("product_name", "short_description", "image", "promo_category_name", mode="before")
    @classmethod
    def _empty_text(cls, value: Any) -> Any:
        return value or ""

    @field_validator("quantity_sold", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @field_validator("price", mode="before")
    @classmethod
    def _missing_price(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def has_promo(self) -> bool:
        return self.promo_price is not None

    @property
    def display_price(self) -> Decimal:
        return self.promo_price if self.promo_price is not None else self.price

    @property
    def discount_percentage(self) -> int:
        if self.promo_price is None or self.price == 0:
            return 0
        return int(round((1 - self.promo_price / self.price) * 100))


class OrderState:
    """Order states as spelled by the backend."""

    CONFIRMED = "Confirmée"
    PROCESSING = "En cours de traitement"
    PROCESSED = "Traitée"
    DELIVERED = "Livrée"
    PLACEHOLDER = "-"

    ACTIVE = (CONFIRMED, PROCESSING, PLACEHOLDER)
    COMPLETED = (PROCESSED, DELIVERED)


class OrderItem(ApiModel):
    """Represents an item of a placed order."""

    model_config = ConfigDict(frozen=True)

    id: int = 0
    quantity: int = Field(0, alias="quantite")
    product: Optional[Product] = Field(None, alias="leProduit")
    retained_price: Decimal = Field(Decimal("0"), alias="prixretenu", description="Price charged at order time")

    @property
    def subtotal(self) -> Decimal:
        return self.retained_price * self.quantity


class Order(ApiModel):
    """Represents an order snapshot."""

    model_config = ConfigDict(frozen=True)

    id: int
    date: str = Field("", alias="dateCommande")
    total: Decimal = Field(Decimal("0"), alias="montantTotal")
    items: list[OrderItem] = Field(default_factory=list, alias="lesCommandes")
    state: Optional[str] = Field(None, alias="etat")
    planning_details: Optional[str] = Field(None, alias="planningDetails")

    @field_validator("date", mode="before")
    @classmethod
    def _empty_date(cls, value: Any) -> Any:
        return value or ""

    @field_validator("items", mode="before")
    @classmethod
    def _empty_list(cls, value: Any) -> Any:
        return value or []

    @property
    def placed_at(self) -> datetime:
        return parse_datetime(self.date)

    @property
    def is_cancellable(self) -> bool:
        """Only unset or confirmed orders may be cancelled."""
        return not self.state or self.state == OrderState.CONFIRMED


class TimeSlot(ApiModel):
    """Represents a pickup time slot of the current week."""

    id: int = 0
    day_raw: Optional[str] = Field(None, alias="jour")
    start_raw: Optional[str] = Field(None, alias="heureDebut")
    end_raw: Optional[str] = Field(None, alias="heureFin")

    @property
    def day(self) -> datetime:
        return parse_datetime(self.day_raw)

    @property
    def start(self) -> datetime:
        return parse_datetime(self.start_raw)

    @property
    def end(self) -> datetime:
        return parse_datetime(self.end_raw)

    @property
    def formatted_day(self) -> str:
        return self.day.strftime("%d/%m/%Y")

    @property
    def formatted_time_range(self) -> str:
        return f"{self.start.strftime('%H:%M')} - {self.end.strftime('%H:%M')}"

    @property
    def display_text(self) -> str:
        return f"{self.formatted_day} ({self.formatted_time_range})"


# Request bodies


class UserRequest(ApiModel):
    user_id: int = Field(alias="userId")


class AddProductRequest(ApiModel):
    user_id: int = Field(alias="userId")
    product_id: int = Field(alias="produitId")
    quantity: int = Field(alias="quantite")
    price: float = Field(alias="prix")


class UpdateQuantityRequest(ApiModel):
    user_id: int = Field(alias="userId")
    product_name: str = Field(alias="nomProduit")
    quantity: int = Field(alias="quantite")


class CancelOrderRequest(ApiModel):
    user_id: int = Field(alias="userId")
    order_id: int = Field(alias="commandeId")


class FavoriteRequest(ApiModel):
    user_id: int = Field(alias="userId")
    product_id: int = Field(alias="produitId")


class ReservationRequest(ApiModel):
    user_id: int = Field(alias="idUser")
    day: str = Field(alias="jour", description="yyyy-MM-dd")
    start: str = Field(alias="heureDebut", description="HH:mm:ss")
    order_id: int = Field(alias="commandeId")
    slot_id: int = Field(alias="id")


class SessionData(BaseModel):
    """Session data for the signed-in customer."""

    user_id: Optional[int] = Field(None, description="Customer ID")
    user_email: Optional[str] = Field(None, description="Customer email")
    is_authenticated: bool = Field(default=False, description="Authentication status")
