# app/repositories/restaurant_repo.py
import uuid

from sqlmodel import Session, select

from app.models.restaurant import Restaurant


class RestaurantRepository:
    """
    Read access to the partner-owned restaurants table.
    """

    def get_by_id(
        self,
        session: Session,
        restaurant_id: uuid.UUID,
    ) -> Restaurant | None:
        return session.get(Restaurant, restaurant_id)

    def list_ids_for_owner(
        self,
        session: Session,
        owner_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        stmt = select(Restaurant.id).where(Restaurant.owner_id == owner_id)
        return list(session.exec(stmt).all())
