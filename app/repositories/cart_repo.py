# app/repositories/cart_repo.py
import uuid
from datetime import datetime

from sqlalchemy import delete, update
from sqlmodel import Session, select

from app.models.cart import (
    Cart,
    CartItem,
    CART_STATUS_ACTIVE,
    CART_STATUS_ABANDONED,
)


class CartRepository:
    """
    Data access layer for carts and cart_items.

    NOTE:
      - No commits here; the service owns the transaction.
      - `for_update=True` takes a row lock (SELECT ... FOR UPDATE) on
        backends that support it.
    """

    # ---- Carts ----

    def find_active(
        self,
        session: Session,
        customer_id: uuid.UUID,
        session_id: str | None = None,
        *,
        restaurant_id: uuid.UUID | None = None,
        for_update: bool = False,
    ) -> Cart | None:
        stmt = select(Cart).where(
            Cart.customer_id == customer_id,
            Cart.status == CART_STATUS_ACTIVE,
        )
        if session_id is not None:
            stmt = stmt.where(Cart.session_id == session_id)
        if restaurant_id is not None:
            stmt = stmt.where(Cart.restaurant_id == restaurant_id)
        stmt = stmt.order_by(Cart.last_activity.desc())
        if for_update:
            stmt = stmt.with_for_update()
        return session.exec(stmt).first()

    def get_by_id(
        self,
        session: Session,
        cart_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Cart | None:
        stmt = select(Cart).where(Cart.id == cart_id)
        if for_update:
            stmt = stmt.with_for_update()
        return session.exec(stmt).first()

    def create(self, session: Session, cart: Cart) -> Cart:
        session.add(cart)
        session.flush()
        return cart

    def save(self, session: Session, cart: Cart) -> Cart:
        session.add(cart)
        session.flush()
        return cart

    def abandon_expired(
        self,
        session: Session,
        now: datetime,
        customer_id: uuid.UUID | None = None,
    ) -> int:
        """
        Single conditional UPDATE; a cart converted concurrently is no
        longer 'active' and is left alone.
        """
        stmt = (
            update(Cart)
            .where(Cart.status == CART_STATUS_ACTIVE, Cart.expires_at < now)
            .values(status=CART_STATUS_ABANDONED)
            .execution_options(synchronize_session=False)
        )
        if customer_id is not None:
            stmt = stmt.where(Cart.customer_id == customer_id)
        result = session.exec(stmt)
        return result.rowcount or 0

    # ---- Items ----

    def list_items(self, session: Session, cart_id: uuid.UUID) -> list[CartItem]:
        stmt = (
            select(CartItem)
            .where(CartItem.cart_id == cart_id)
            .order_by(CartItem.added_at, CartItem.id)
        )
        return list(session.exec(stmt).all())

    def get_item(
        self,
        session: Session,
        cart_id: uuid.UUID,
        item_id: uuid.UUID,
    ) -> CartItem | None:
        stmt = select(CartItem).where(
            CartItem.cart_id == cart_id,
            CartItem.id == item_id,
        )
        return session.exec(stmt).first()

    def add_item(self, session: Session, item: CartItem) -> CartItem:
        session.add(item)
        session.flush()
        return item

    def save_item(self, session: Session, item: CartItem) -> CartItem:
        session.add(item)
        session.flush()
        return item

    def delete_item(self, session: Session, item: CartItem) -> None:
        session.delete(item)
        session.flush()

    def delete_items(self, session: Session, cart_id: uuid.UUID) -> int:
        result = session.exec(delete(CartItem).where(CartItem.cart_id == cart_id))
        return result.rowcount or 0
