# app/models/product.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class Product(SQLModel, table=True):
    """
    Catalog entry offered by a restaurant.

    option_groups holds the live option schema, e.g.:

        [
          {"name": "Size", "options": [
              {"name": "Large", "price": "2.00", "is_available": true}
          ]}
        ]

    stock_quantity is only meaningful for store products; NULL means the
    product is not stock-tracked.
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    restaurant_id: uuid.UUID = Field(
        foreign_key="restaurants.id",
        index=True,
        description="FK to restaurants.id",
    )

    title: str = Field(
        max_length=150,
        index=True,
        description="Display name of the dish/product",
    )

    price: Decimal = Field(
        max_digits=10,
        decimal_places=2,
        description="Unit price (EUR)",
    )

    image_url: str | None = Field(default=None)

    # restaurant | store (mirrors the owning restaurant's category)
    category: str = Field(default="restaurant")

    option_groups: list[dict] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    is_active: bool = Field(
        default=True,
        index=True,
        description="Whether the partner still sells this product",
    )

    is_available: bool = Field(
        default=True,
        index=True,
        description="Temporarily available right now (e.g. not sold out)",
    )

    stock_quantity: int | None = Field(
        default=None,
        ge=0,
        description="Units in stock for store products; NULL = untracked",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

    @property
    def is_stock_tracked(self) -> bool:
        return self.category == "store" and self.stock_quantity is not None
