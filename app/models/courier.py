# app/models/courier.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class CourierProfile(SQLModel, table=True):
    """
    Rating aggregate for a courier account.

    Onboarding details live with the courier-onboarding collaborator;
    only the rating numbers are maintained here.
    """

    __tablename__ = "courier_profiles"

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        primary_key=True,
    )

    display_name: str | None = None

    rating_average: float = Field(default=0.0)
    rating_count: int = Field(default=0)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
