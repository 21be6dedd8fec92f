import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field


class SelectedOption(SQLModel):
    """
    One option chosen for a cart line.

    option_price sent by clients is ignored; the price is taken from the
    product's live option schema when the item is added.
    """

    model_config = ConfigDict(extra="forbid")

    group_name: str = Field(min_length=1)
    option_name: str = Field(min_length=1)
    option_price: Decimal = Field(default=Decimal("0.00"), ge=0)


def _normalize_request(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    return v or None


class AddCartItemCommand(SQLModel):
    """
    Payload for adding a product to the cart.
    """

    model_config = ConfigDict(extra="forbid")

    product_id: uuid.UUID
    quantity: int = Field(default=1, gt=0)
    selected_options: list[SelectedOption] = Field(default_factory=list)
    special_requests: str | None = Field(default=None, max_length=200)

    @field_validator("special_requests")
    @classmethod
    def normalize_request(cls, v: str | None) -> str | None:
        return _normalize_request(v)


class UpdateCartItemCommand(SQLModel):
    """
    Partial update of a cart line. Only these three fields exist;
    anything else in the payload is rejected.
    """

    model_config = ConfigDict(extra="forbid")

    quantity: int | None = Field(default=None, gt=0)
    selected_options: list[SelectedOption] | None = None
    special_requests: str | None = Field(default=None, max_length=200)

    @field_validator("special_requests")
    @classmethod
    def normalize_request(cls, v: str | None) -> str | None:
        return _normalize_request(v)


class DeliveryQuoteRequest(SQLModel):
    """
    Destination for a delivery quote. Coordinates are already resolved
    by the client; the postal code is used for zone lookup when present.
    """

    model_config = ConfigDict(extra="forbid")

    address: str = Field(min_length=1, max_length=300)
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    postal_code: str | None = Field(default=None, max_length=16)

    @field_validator("address")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("address cannot be empty")
        return v


class CartItemRead(SQLModel):
    """
    Read model for a single cart line.
    """

    id: uuid.UUID
    product_id: uuid.UUID
    product_title: str
    product_price: Decimal
    product_image_url: str | None = None
    product_category: str | None = None
    quantity: int
    selected_options: list[SelectedOption]
    options_price: Decimal
    special_requests: str | None = None
    item_total: Decimal
    added_at: datetime


class CartPricing(SQLModel):
    subtotal: Decimal
    delivery_fee: Decimal
    service_fee: Decimal
    discount_amount: Decimal
    total_price: Decimal


class CartDeliveryInfo(SQLModel):
    address: str
    lat: float
    lng: float
    postal_code: str | None = None
    zone_number: int | None = None
    distance_km: float
    delivery_fee: Decimal
    eta_minutes: int
    quoted_at: datetime


class CartRead(SQLModel):
    """
    Full cart view: restaurant snapshot, items, pricing and delivery quote.
    """

    id: uuid.UUID
    customer_id: uuid.UUID
    session_id: str | None
    restaurant_id: uuid.UUID
    restaurant_name: str
    restaurant_category: str
    min_order_amount: Decimal
    status: str
    items: list[CartItemRead]
    pricing: CartPricing
    delivery_info: CartDeliveryInfo | None = None
    total_items: int
    meets_minimum_order: bool
    last_activity: datetime
    expires_at: datetime


class CartSummary(SQLModel):
    """
    Response for GET /cart. cart is None when there is no active cart.
    """

    cart: CartRead | None
    total_items: int
    subtotal: Decimal
    total_price: Decimal
    meets_minimum_order: bool


class AddCartItemResult(SQLModel):
    cart: CartRead
    added_item: CartItemRead


class UpdateCartItemResult(SQLModel):
    cart: CartRead
    updated_item: CartItemRead


class RemoveCartItemResult(SQLModel):
    cart: CartRead | None
    removed_item: CartItemRead


class ClearCartResult(SQLModel):
    cleared_items_count: int
    saved_amount: Decimal


class DeliveryQuoteResult(SQLModel):
    cart: CartRead
    delivery: CartDeliveryInfo
