# app/models/zone.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class DeliveryZone(SQLModel, table=True):
    """
    Geographic delivery-pricing unit.

    Matched by postal code first; center_lat/center_lng plus
    max_distance_km give the coordinate fallback when the postal code is
    unknown. A postal code belongs to at most one zone.
    """

    __tablename__ = "delivery_zones"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    zone_number: int = Field(unique=True, index=True)
    zone_name: str = Field(max_length=100)

    postal_codes: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
        description="Upper-cased postal codes served by this zone",
    )

    base_fee: Decimal = Field(max_digits=10, decimal_places=2)
    additional_restaurant_fee: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=10,
        decimal_places=2,
        description="Flat surcharge per extra restaurant in one session",
    )

    max_distance_km: float
    estimated_delivery_minutes: int = Field(default=30)

    center_lat: float | None = None
    center_lng: float | None = None

    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
