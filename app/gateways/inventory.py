# app/gateways/inventory.py
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlmodel import Session

from app.core.errors import InsufficientStockError
from app.repositories.product_repo import ProductRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProductAvailability:
    """
    Current catalog state of one product, read at order-creation time.
    """

    id: uuid.UUID
    restaurant_id: uuid.UUID
    title: str
    price: Decimal
    category: str
    active: bool
    available: bool
    stock: int | None

    @property
    def is_stock_tracked(self) -> bool:
        return self.category == "store" and self.stock is not None


class InventoryGateway(Protocol):
    def get_available(
        self, session: Session, product_ids: list[uuid.UUID]
    ) -> list[ProductAvailability]: ...

    def decrement_stock(
        self, session: Session, product_id: uuid.UUID, quantity: int
    ) -> None: ...

    def restore_stock(
        self, session: Session, product_id: uuid.UUID, quantity: int
    ) -> None: ...


class SqlInventoryGateway:
    """
    Inventory backed by the products table, sharing the caller's session so
    stock changes commit or roll back together with the order.
    """

    def __init__(self, product_repo: ProductRepository):
        self.product_repo = product_repo

    def get_available(
        self,
        session: Session,
        product_ids: list[uuid.UUID],
    ) -> list[ProductAvailability]:
        products = self.product_repo.list_by_ids(session, product_ids)
        return [
            ProductAvailability(
                id=p.id,
                restaurant_id=p.restaurant_id,
                title=p.title,
                price=p.price,
                category=p.category,
                active=p.is_active,
                available=p.is_available,
                stock=p.stock_quantity,
            )
            for p in products
        ]

    def decrement_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        quantity: int,
    ) -> None:
        if not self.product_repo.decrement_stock(session, product_id, quantity):
            available = self.product_repo.current_stock(session, product_id)
            logger.warning(
                "Stock decrement refused product=%s requested=%s available=%s",
                product_id,
                quantity,
                available,
            )
            raise InsufficientStockError(
                "Not enough stock to reserve this item",
                product_id=product_id,
                requested_quantity=quantity,
                available_quantity=available,
            )

    def restore_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        quantity: int,
    ) -> None:
        if not self.product_repo.increment_stock(session, product_id, quantity):
            # Product deleted or no longer stock-tracked; nothing to give back to
            logger.warning(
                "Stock restore skipped product=%s quantity=%s", product_id, quantity
            )
