# app/models/cart.py
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import Column, Index, JSON, text
from sqlmodel import SQLModel, Field

CART_STATUS_ACTIVE = "active"
CART_STATUS_ABANDONED = "abandoned"
CART_STATUS_CONVERTED = "converted"


def _money_field(**kwargs):
    return Field(default=Decimal("0.00"), max_digits=10, decimal_places=2, **kwargs)


class Cart(SQLModel, table=True):
    """
    Shopping cart for one customer and one restaurant.

    - restaurant_* columns are a snapshot taken when the cart is created,
      later restaurant edits do not change an in-progress cart
    - pricing columns are recomputed on every item mutation
    - delivery_* columns hold the last delivery quote (NULL until quoted)

    At most one *active* cart per (customer, restaurant) is allowed; the
    partial unique index below enforces it in the database.
    """

    __tablename__ = "carts"
    __table_args__ = (
        Index(
            "uq_carts_active_customer_restaurant",
            "customer_id",
            "restaurant_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    customer_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    session_id: str | None = Field(
        default=None,
        index=True,
        description="Client session the cart was started from",
    )

    restaurant_id: uuid.UUID = Field(
        foreign_key="restaurants.id",
        index=True,
    )

    # Restaurant snapshot
    restaurant_name: str
    restaurant_category: str
    restaurant_delivery_fee: Decimal = _money_field()
    min_order_amount: Decimal = _money_field()

    # Pricing
    subtotal: Decimal = _money_field()
    delivery_fee: Decimal = _money_field()
    service_fee: Decimal = _money_field()
    discount_amount: Decimal = _money_field()
    total_price: Decimal = _money_field()

    # Delivery quote
    delivery_address: str | None = None
    delivery_lat: float | None = None
    delivery_lng: float | None = None
    delivery_postal_code: str | None = None
    delivery_zone_number: int | None = None
    delivery_distance_km: float | None = None
    delivery_eta_minutes: int | None = None
    delivery_quoted_at: datetime | None = None

    # active | abandoned | converted
    status: str = Field(default=CART_STATUS_ACTIVE, index=True)

    last_activity: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )
    expires_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc) + timedelta(hours=24),
        index=True,
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class CartItem(SQLModel, table=True):
    """
    Line item inside a cart.

    product_* columns are copied from the product when the item is added
    and are never refreshed from the catalog.
    """

    __tablename__ = "cart_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    cart_id: uuid.UUID = Field(
        foreign_key="carts.id",
        index=True,
    )

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )

    product_title: str
    product_price: Decimal = Field(max_digits=10, decimal_places=2)
    product_image_url: str | None = None
    product_category: str | None = None

    quantity: int = Field(
        gt=0,
        description="Must be >= 1",
    )

    # [{"group_name": ..., "option_name": ..., "option_price": "1.50"}]
    selected_options: list[dict] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    options_price: Decimal = _money_field()

    special_requests: str | None = Field(default=None, max_length=200)

    item_total: Decimal = _money_field()

    added_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
