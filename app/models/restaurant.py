# app/models/restaurant.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlmodel import SQLModel, Field


class Restaurant(SQLModel, table=True):
    """
    Merchant partner (restaurant or store).

    Owned by the partner-onboarding collaborator; the ordering core only
    reads it (snapshot at cart creation, coordinates for delivery quotes)
    and bumps the aggregate rating after a customer rates an order.
    """

    __tablename__ = "restaurants"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    owner_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
        description="Partner user managing this restaurant",
    )

    name: str = Field(max_length=120)

    # restaurant | store  (stores track stock per product)
    category: str = Field(default="restaurant", index=True)

    is_active: bool = Field(default=True, index=True)
    is_approved: bool = Field(default=True, index=True)

    lat: float
    lng: float

    base_delivery_fee: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=10,
        decimal_places=2,
    )
    min_order_amount: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=10,
        decimal_places=2,
    )

    rating_average: float = Field(default=0.0)
    rating_count: int = Field(default=0)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
