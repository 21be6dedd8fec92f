# app/repositories/rating_repo.py
import uuid

from sqlalchemy import update
from sqlmodel import Session

from app.models.courier import CourierProfile
from app.models.restaurant import Restaurant


class RatingRepository:
    """
    Running-average updates for restaurant and courier ratings.

    Both updates are single statements computed in SQL, so concurrent
    ratings for the same restaurant do not lose increments.
    """

    def record_restaurant_rating(
        self,
        session: Session,
        restaurant_id: uuid.UUID,
        value: int,
    ) -> None:
        stmt = (
            update(Restaurant)
            .where(Restaurant.id == restaurant_id)
            .values(
                rating_average=(
                    Restaurant.rating_average * Restaurant.rating_count + value
                )
                / (Restaurant.rating_count + 1),
                rating_count=Restaurant.rating_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
        session.exec(stmt)

    def record_courier_rating(
        self,
        session: Session,
        courier_id: uuid.UUID,
        value: int,
    ) -> None:
        if session.get(CourierProfile, courier_id) is None:
            session.add(CourierProfile(user_id=courier_id))
            session.flush()

        stmt = (
            update(CourierProfile)
            .where(CourierProfile.user_id == courier_id)
            .values(
                rating_average=(
                    CourierProfile.rating_average * CourierProfile.rating_count
                    + value
                )
                / (CourierProfile.rating_count + 1),
                rating_count=CourierProfile.rating_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
        session.exec(stmt)
