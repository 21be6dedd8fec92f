# app/models/user.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Identity mirror for the marketplace.

    Identity:
      - id: MUST match the identity provider's user id (UUID from JWT "sub")

    Role:
      - "customer" | "partner" | "courier" | "admin"

    Passwords and onboarding documents live with the identity provider;
    this table only mirrors identity, name, and application role, which is
    what the ordering core needs to enforce its transition table.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="Matches the identity provider user id",
    )

    email: str = Field(
        unique=True,
        index=True,
        description="Email from the identity provider",
    )

    name: str = Field(
        max_length=50,
        description="Display name; first part of email by default",
    )

    role: str = Field(
        default="customer",
        index=True,
        description="Application role: customer | partner | courier | admin",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
