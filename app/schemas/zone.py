import uuid
from decimal import Decimal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field


class DeliveryZoneCreate(SQLModel):
    """
    Admin payload to register a delivery zone.
    """

    model_config = ConfigDict(extra="forbid")

    zone_number: int = Field(ge=1)
    zone_name: str = Field(min_length=1, max_length=100)
    postal_codes: list[str] = Field(default_factory=list)
    base_fee: Decimal = Field(ge=0)
    additional_restaurant_fee: Decimal = Field(default=Decimal("0.00"), ge=0)
    max_distance_km: float = Field(gt=0)
    estimated_delivery_minutes: int = Field(default=30, gt=0)
    center_lat: float | None = Field(default=None, ge=-90, le=90)
    center_lng: float | None = Field(default=None, ge=-180, le=180)

    @field_validator("postal_codes")
    @classmethod
    def normalize_codes(cls, v: list[str]) -> list[str]:
        codes = [c.strip().upper() for c in v if c and c.strip()]
        if len(codes) != len(set(codes)):
            raise ValueError("postal codes must be unique within a zone")
        return codes


class DeliveryZoneRead(SQLModel):
    id: uuid.UUID
    zone_number: int
    zone_name: str
    postal_codes: list[str]
    base_fee: Decimal
    additional_restaurant_fee: Decimal
    max_distance_km: float
    estimated_delivery_minutes: int
    center_lat: float | None
    center_lng: float | None
    is_active: bool


class ZoneAvailabilityRead(SQLModel):
    """
    Answer to "do you deliver to this postal code / point?".
    """

    available: bool
    zone_number: int | None = None
    zone_name: str | None = None
    base_fee: Decimal | None = None
    estimated_delivery_minutes: int | None = None
