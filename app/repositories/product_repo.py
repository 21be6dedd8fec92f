# app/repositories/product_repo.py
import uuid

from sqlalchemy import update
from sqlmodel import Session, select

from app.models.product import Product


class ProductRepository:
    """
    Data access layer for Product.

    - Pure DB operations (queries + conditional stock updates).
    - No FastAPI, no business logic.
    """

    def get_by_id(self, session: Session, product_id: uuid.UUID) -> Product | None:
        return session.get(Product, product_id)

    def list_by_ids(
        self,
        session: Session,
        product_ids: list[uuid.UUID],
    ) -> list[Product]:
        if not product_ids:
            return []
        stmt = select(Product).where(Product.id.in_(product_ids))
        return list(session.exec(stmt).all())

    # ----- Stock -----

    def decrement_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        quantity: int,
    ) -> bool:
        """
        Atomic `stock_quantity -= quantity` guarded by `stock_quantity >= quantity`.
        Returns False when the guard did not match (not enough stock).
        """
        stmt = (
            update(Product)
            .where(
                Product.id == product_id,
                Product.stock_quantity.is_not(None),
                Product.stock_quantity >= quantity,
            )
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        result = session.exec(stmt)
        return result.rowcount == 1

    def increment_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        quantity: int,
    ) -> bool:
        stmt = (
            update(Product)
            .where(
                Product.id == product_id,
                Product.stock_quantity.is_not(None),
            )
            .values(stock_quantity=Product.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        result = session.exec(stmt)
        return result.rowcount == 1

    def current_stock(self, session: Session, product_id: uuid.UUID) -> int | None:
        stmt = select(Product.stock_quantity).where(Product.id == product_id)
        return session.exec(stmt).first()
