# app/repositories/order_repo.py
import uuid
from datetime import date, datetime

from sqlalchemy import update
from sqlmodel import Session, select

from app.models.order import Order, OrderItem, OrderSequence, OrderStatusEvent


class OrderRepository:
    """
    Data access layer for orders, order_items and the tracking log.

    NOTE:
      - No commits here; order creation is a multi-step transaction.
        The service is responsible for calling session.commit().
    """

    # ---- Orders ----

    def get_by_id(
        self,
        session: Session,
        order_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Order | None:
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        return session.exec(stmt).first()

    def list_for_customer(
        self,
        session: Session,
        customer_id: uuid.UUID,
        status: str | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        stmt = select(Order).where(Order.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def list_for_partners(
        self,
        session: Session,
        partner_ids: list[uuid.UUID],
        status: str | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        if not partner_ids:
            return []
        stmt = select(Order).where(Order.partner_id.in_(partner_ids))
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def list_ready_unclaimed(self, session: Session, limit: int = 20) -> list[Order]:
        stmt = (
            select(Order)
            .where(
                Order.status == "ready_for_pickup",
                Order.courier_id.is_(None),
            )
            .order_by(Order.ready_at, Order.created_at)
            .limit(limit)
        )
        return list(session.exec(stmt).all())

    def list_for_courier(
        self,
        session: Session,
        courier_id: uuid.UUID,
        status: str,
    ) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.courier_id == courier_id, Order.status == status)
            .order_by(Order.picked_up_at)
        )
        return list(session.exec(stmt).all())

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing, but ensure id is populated.
        """
        session.add(order)
        session.flush()
        return order

    def update_order(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.flush()
        return order

    def claim_for_courier(
        self,
        session: Session,
        order_id: uuid.UUID,
        courier_id: uuid.UUID,
        now: datetime,
    ) -> bool:
        """
        First-writer-wins claim. The WHERE clause is the whole race guard:
        exactly one concurrent caller sees rowcount == 1.
        """
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == "ready_for_pickup",
                Order.courier_id.is_(None),
            )
            .values(
                status="out_for_delivery",
                courier_id=courier_id,
                picked_up_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = session.exec(stmt)
        return result.rowcount == 1

    # ---- Order number sequence ----

    def next_order_number(self, session: Session, day: date) -> str:
        """
        Allocate ORD-YYYYMMDD-NNNN inside the caller's transaction.

        The UPDATE takes the row lock for the day, so concurrent creators
        serialize here; the first order of a day inserts the row instead
        (a concurrent insert of the same day fails with IntegrityError and
        is surfaced to the caller as a retryable conflict).
        """
        stmt = (
            update(OrderSequence)
            .where(OrderSequence.day == day)
            .values(last_value=OrderSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        result = session.exec(stmt)
        if result.rowcount == 0:
            session.add(OrderSequence(day=day, last_value=1))
            session.flush()
            value = 1
        else:
            value = session.exec(
                select(OrderSequence.last_value).where(OrderSequence.day == day)
            ).one()
        return f"ORD-{day:%Y%m%d}-{value:04d}"

    # ---- Order items ----

    def list_items_for_order(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> list[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_id)
        return list(session.exec(stmt).all())

    def create_items(
        self,
        session: Session,
        items: list[OrderItem],
    ) -> list[OrderItem]:
        session.add_all(items)
        session.flush()
        return items

    # ---- Tracking log ----

    def add_event(self, session: Session, event: OrderStatusEvent) -> OrderStatusEvent:
        session.add(event)
        session.flush()
        return event

    def list_events(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> list[OrderStatusEvent]:
        stmt = (
            select(OrderStatusEvent)
            .where(OrderStatusEvent.order_id == order_id)
            .order_by(OrderStatusEvent.created_at, OrderStatusEvent.id)
        )
        return list(session.exec(stmt).all())
