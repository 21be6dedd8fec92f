# app/repositories/stats_repo.py
from datetime import datetime

from sqlalchemy import func
from sqlmodel import Session, select

from app.models.cart import Cart, CART_STATUS_ABANDONED
from app.models.order import Order, OrderItem
from app.models.user import User


class StatsRepository:
    """
    Read-only aggregated queries for admin dashboard.

    Every period query takes a half-open [start, end) range on created_at.
    """

    def count_customers(self, session: Session) -> int:
        stmt = select(func.count()).select_from(User).where(User.role == "customer")
        # SQLModel's Session.exec() -> ScalarResult -> use .one()
        value = session.exec(stmt).one()
        return int(value or 0)

    def count_orders(self, session: Session, start: datetime, end: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(Order)
            .where(Order.created_at >= start, Order.created_at < end)
        )
        value = session.exec(stmt).one()
        return int(value or 0)

    def total_revenue(self, session: Session, start: datetime, end: datetime):
        """
        Sum of total_price for all non-cancelled orders in the period.
        """
        stmt = select(func.coalesce(func.sum(Order.total_price), 0)).where(
            Order.status != "cancelled",
            Order.created_at >= start,
            Order.created_at < end,
        )
        return session.exec(stmt).one()

    def status_breakdown(
        self,
        session: Session,
        start: datetime,
        end: datetime,
    ) -> list[tuple]:
        stmt = (
            select(Order.status, func.count(Order.id))
            .where(Order.created_at >= start, Order.created_at < end)
            .group_by(Order.status)
            .order_by(Order.status)
        )
        return list(session.exec(stmt).all())

    def daily_sales(
        self,
        session: Session,
        start: datetime,
        end: datetime,
    ) -> list[tuple]:
        """
        Aggregate revenue per day using Order.created_at.
        Excludes cancelled orders.
        """
        day_expr = func.date(Order.created_at)

        stmt = (
            select(
                day_expr.label("day"),
                func.coalesce(func.sum(Order.total_price), 0).label("revenue"),
                func.count(Order.id).label("order_count"),
            )
            .where(
                Order.status != "cancelled",
                Order.created_at >= start,
                Order.created_at < end,
            )
            .group_by(day_expr)
            .order_by(day_expr)
        )

        return list(session.exec(stmt).all())

    def top_products(
        self,
        session: Session,
        start: datetime,
        end: datetime,
        limit: int = 5,
    ) -> list[tuple]:
        """
        Top products by quantity sold across non-cancelled orders.
        """
        qty_sum = func.coalesce(func.sum(OrderItem.quantity), 0)
        revenue_sum = func.coalesce(func.sum(OrderItem.item_total), 0)

        stmt = (
            select(
                OrderItem.product_id,
                OrderItem.title,
                qty_sum.label("total_quantity"),
                revenue_sum.label("total_revenue"),
            )
            .join(Order, Order.id == OrderItem.order_id)
            .where(
                Order.status != "cancelled",
                Order.created_at >= start,
                Order.created_at < end,
            )
            .group_by(OrderItem.product_id, OrderItem.title)
            .order_by(qty_sum.desc())
            .limit(limit)
        )

        return list(session.exec(stmt).all())

    def abandoned_carts(
        self,
        session: Session,
        start: datetime,
        end: datetime,
    ) -> tuple:
        """
        (count, summed total_price) of carts abandoned in the period.
        Carts emptied before abandonment contribute zero.
        """
        stmt = select(
            func.count(Cart.id),
            func.coalesce(func.sum(Cart.total_price), 0),
        ).where(
            Cart.status == CART_STATUS_ABANDONED,
            Cart.created_at >= start,
            Cart.created_at < end,
        )
        return session.exec(stmt).one()

    def latest_orders(
        self,
        session: Session,
        limit: int = 5,
    ) -> list[Order]:
        """
        Latest N orders by created_at (any status).
        """
        stmt = (
            select(Order)
            .order_by(Order.created_at.desc())
            .limit(limit)
        )
        return list(session.exec(stmt).all())
