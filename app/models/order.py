# app/models/order.py
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


def _money_field(**kwargs):
    return Field(max_digits=10, decimal_places=2, **kwargs)


class Order(SQLModel, table=True):
    """
    Committed purchase, frozen from a cart.

    Only the status columns (status, courier_id, payment_status, the
    *_at timestamps) and the ratings block change after creation.
    The status history lives in order_status_events; `status` is a
    cached copy of the latest event.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    # ORD-YYYYMMDD-NNNN
    order_number: str = Field(
        unique=True,
        index=True,
        max_length=32,
    )

    customer_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    partner_id: uuid.UUID = Field(
        foreign_key="restaurants.id",
        index=True,
        description="Restaurant fulfilling the order",
    )
    courier_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        index=True,
    )
    cart_id: uuid.UUID = Field(foreign_key="carts.id", index=True)

    # Pricing (recomputed from surviving items when some were dropped)
    subtotal: Decimal = _money_field()
    delivery_fee: Decimal = _money_field()
    service_fee: Decimal = _money_field()
    discount_amount: Decimal = _money_field(default=Decimal("0.00"))
    total_price: Decimal = _money_field()

    # Availability validation record
    availability_validated_at: datetime
    unavailable_items: list[dict] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    # Delivery address
    delivery_address: str
    delivery_lat: float
    delivery_lng: float
    delivery_postal_code: str | None = None
    apartment: str | None = None
    delivery_notes: str | None = Field(default=None, max_length=300)

    # Customer contact
    contact_name: str
    contact_phone: str
    contact_email: str | None = None

    # cash | card
    payment_method: str
    # pending | processing | completed | failed | refunded
    payment_status: str = Field(default="pending", index=True)
    payment_reference: str | None = None
    # charge attempts sent to the gateway; each one gets its own idempotency key
    payment_attempts: int = Field(default=0)

    # pending | accepted | preparing | ready_for_pickup
    # | out_for_delivery | delivered | cancelled
    status: str = Field(default="pending", index=True)

    special_requests: str | None = Field(default=None, max_length=500)

    estimated_delivery_at: datetime | None = None
    accepted_at: datetime | None = None
    ready_at: datetime | None = None
    picked_up_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = Field(default=None, max_length=500)

    # Ratings (set at most once, after delivery)
    partner_rating: int | None = None
    courier_rating: int | None = None
    rating_comment: str | None = Field(default=None, max_length=500)
    rated_at: datetime | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
        description="Creation timestamp (UTC)",
    )


class OrderItem(SQLModel, table=True):
    """
    Line item inside an order, frozen from the cart item snapshot.
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(foreign_key="orders.id", index=True)
    product_id: uuid.UUID = Field(foreign_key="products.id", index=True)

    title: str
    unit_price: Decimal = _money_field()
    image_url: str | None = None
    category: str | None = None

    quantity: int = Field(gt=0, description="Quantity ordered (>=1)")

    selected_options: list[dict] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    options_price: Decimal = _money_field(default=Decimal("0.00"))
    item_total: Decimal = _money_field()

    special_requests: str | None = Field(default=None, max_length=200)

    # True when stock was decremented for this line at creation time
    stock_reserved: bool = Field(default=False)


class OrderStatusEvent(SQLModel, table=True):
    """
    Append-only tracking log entry. Never updated or deleted.
    """

    __tablename__ = "order_status_events"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
    )

    order_id: uuid.UUID = Field(foreign_key="orders.id", index=True)
    status: str
    actor_id: uuid.UUID | None = None
    # customer | partner | courier | system
    actor_role: str
    note: str | None = Field(default=None, max_length=500)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )


class OrderSequence(SQLModel, table=True):
    """
    Per-day counter backing ORD-YYYYMMDD-NNNN order numbers.
    """

    __tablename__ = "order_sequences"

    day: date = Field(primary_key=True)
    last_value: int = Field(default=0)
