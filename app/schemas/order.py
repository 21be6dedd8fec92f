import re
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import ConfigDict, EmailStr, field_validator, model_validator
from sqlmodel import SQLModel, Field

OrderStatus = Literal[
    "pending",
    "accepted",
    "preparing",
    "ready_for_pickup",
    "out_for_delivery",
    "delivered",
    "cancelled",
]
PaymentMethod = Literal["cash", "card"]
PaymentStatus = Literal["pending", "processing", "completed", "failed", "refunded"]
ActorRole = Literal["customer", "partner", "courier", "system"]

PHONE_PATTERN = re.compile(r"^\+?[0-9]{6,15}$")


class DeliveryAddressIn(SQLModel):
    model_config = ConfigDict(extra="forbid")

    address: str = Field(min_length=1, max_length=300)
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    postal_code: str | None = Field(default=None, max_length=16)
    apartment: str | None = Field(default=None, max_length=50)
    delivery_notes: str | None = Field(default=None, max_length=300)

    @field_validator("address")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("apartment", "delivery_notes", "postal_code")
    @classmethod
    def normalize_optional(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class CustomerContactIn(SQLModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    phone: str
    email: EmailStr | None = None

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, v: str) -> str:
        v = re.sub(r"[\s\-().]", "", v)
        if not PHONE_PATTERN.match(v):
            raise ValueError("invalid phone number")
        return v


class CreateOrderCommand(SQLModel):
    """
    Payload for creating an order from the current cart.

    Customer provides:
      - delivery address (already geocoded)
      - contact details
      - payment method (cash | card)
      - special requests (optional)

    Backend derives:
      - customer_id from token
      - items and pricing from the cart (re-validated against the catalog)
      - order_number, status='pending', payment_status
    """

    model_config = ConfigDict(extra="forbid")

    delivery_address: DeliveryAddressIn
    customer_contact: CustomerContactIn
    payment_method: PaymentMethod = "cash"
    special_requests: str | None = Field(default=None, max_length=500)

    @field_validator("special_requests", mode="before", check_fields=False)
    @classmethod
    def normalize_requests(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class CancelOrderCommand(SQLModel):
    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, max_length=500)


class RejectOrderCommand(SQLModel):
    model_config = ConfigDict(extra="forbid")

    reason: str = Field(min_length=1, max_length=500)


class TransitionNoteCommand(SQLModel):
    model_config = ConfigDict(extra="forbid")

    note: str | None = Field(default=None, max_length=500)


class RateOrderCommand(SQLModel):
    """
    Ratings are 1..5; at least one of the two must be given.
    """

    model_config = ConfigDict(extra="forbid")

    partner_rating: int | None = Field(default=None, ge=1, le=5)
    courier_rating: int | None = Field(default=None, ge=1, le=5)
    comment: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def require_a_rating(self):
        if self.partner_rating is None and self.courier_rating is None:
            raise ValueError("partner_rating or courier_rating is required")
        return self


class SelectedOptionRead(SQLModel):
    group_name: str
    option_name: str
    option_price: Decimal


class OrderItemRead(SQLModel):
    id: uuid.UUID
    product_id: uuid.UUID
    title: str
    unit_price: Decimal
    image_url: str | None = None
    quantity: int
    selected_options: list[SelectedOptionRead]
    options_price: Decimal
    item_total: Decimal
    special_requests: str | None = None


class UnavailableItemRead(SQLModel):
    product_id: uuid.UUID
    title: str
    reason: str
    requested_quantity: int
    available_quantity: int | None = None


class OrderStatusEventRead(SQLModel):
    status: OrderStatus
    actor_id: uuid.UUID | None
    actor_role: ActorRole
    note: str | None
    created_at: datetime


class OrderRatingsRead(SQLModel):
    partner_rating: int | None
    courier_rating: int | None
    comment: str | None
    rated_at: datetime | None


class OrderRead(SQLModel):
    """
    Lightweight representation of an order (without items).
    """

    id: uuid.UUID
    order_number: str
    customer_id: uuid.UUID
    partner_id: uuid.UUID
    courier_id: uuid.UUID | None
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    subtotal: Decimal
    delivery_fee: Decimal
    service_fee: Decimal
    discount_amount: Decimal
    total_price: Decimal
    delivery_address: str
    delivery_lat: float
    delivery_lng: float
    created_at: datetime


class OrderWithItemsRead(OrderRead):
    """
    Full order view including items, validation record and tracking log.
    """

    items: list[OrderItemRead]
    availability_validated_at: datetime
    unavailable_items: list[UnavailableItemRead]
    contact_name: str
    contact_phone: str
    contact_email: str | None
    special_requests: str | None
    estimated_delivery_at: datetime | None
    cancellation_reason: str | None
    ratings: OrderRatingsRead | None
    tracking: list[OrderStatusEventRead]


class PriceAdjustment(SQLModel):
    original_total: Decimal
    new_total: Decimal
    difference: Decimal


class OrderWarnings(SQLModel):
    """
    Non-fatal problems found while creating the order. The order was
    still created; the customer is informed after the fact.
    """

    message: str
    unavailable_items: list[UnavailableItemRead] = Field(default_factory=list)
    price_adjustment: PriceAdjustment | None = None
    payment_failure: str | None = None


class OrderCreatedRead(SQLModel):
    order: OrderWithItemsRead
    warnings: OrderWarnings | None = None


class OrderTrackingRead(SQLModel):
    order_id: uuid.UUID
    order_number: str
    status: OrderStatus
    status_description: str
    progress: int
    next_step: str
    estimated_delivery_at: datetime | None
    tracking: list[OrderStatusEventRead]


class AvailableOrderRead(OrderRead):
    """
    Entry in the courier pool: a ready order nobody has claimed yet.
    """

    restaurant_name: str
    pickup_lat: float
    pickup_lng: float
    pickup_distance_km: float | None = None
    ready_at: datetime | None
