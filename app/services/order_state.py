# app/services/order_state.py
"""
Order status state machine.

    pending -> accepted -> preparing -> ready_for_pickup
            -> out_for_delivery -> delivered

cancelled is reachable from pending and accepted only. delivered and
cancelled are terminal. Every applied transition yields exactly one
OrderStatusEvent; orders.status is a cached copy of the latest event.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlmodel import Session

from app.core.errors import (
    InvalidStateError,
    InvalidTransitionError,
    OrderClosedError,
    ValidationFailedError,
)
from app.core.timeutils import utcnow
from app.gateways.inventory import InventoryGateway
from app.models.order import Order, OrderStatusEvent
from app.repositories.order_repo import OrderRepository
from app.repositories.rating_repo import RatingRepository
from app.schemas.order import RateOrderCommand

logger = logging.getLogger(__name__)

PENDING = "pending"
ACCEPTED = "accepted"
PREPARING = "preparing"
READY_FOR_PICKUP = "ready_for_pickup"
OUT_FOR_DELIVERY = "out_for_delivery"
DELIVERED = "delivered"
CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset({DELIVERED, CANCELLED})

# (current, target) -> roles allowed to trigger it
TRANSITIONS: dict[tuple[str, str], frozenset[str]] = {
    (PENDING, ACCEPTED): frozenset({"partner"}),
    (PENDING, CANCELLED): frozenset({"partner", "customer"}),
    (ACCEPTED, PREPARING): frozenset({"partner"}),
    (ACCEPTED, CANCELLED): frozenset({"partner", "customer"}),
    (PREPARING, READY_FOR_PICKUP): frozenset({"partner"}),
    (READY_FOR_PICKUP, OUT_FOR_DELIVERY): frozenset({"courier"}),
    (OUT_FOR_DELIVERY, DELIVERED): frozenset({"courier"}),
}

STATUS_TIMESTAMPS = {
    ACCEPTED: "accepted_at",
    READY_FOR_PICKUP: "ready_at",
    OUT_FOR_DELIVERY: "picked_up_at",
    DELIVERED: "delivered_at",
    CANCELLED: "cancelled_at",
}


@dataclass(frozen=True, slots=True)
class Actor:
    """Who triggers a transition: a user id (None for system) and a role."""

    id: uuid.UUID | None
    role: str


SYSTEM_ACTOR = Actor(id=None, role="system")


def can_transition(current: str, target: str, role: str) -> bool:
    return role in TRANSITIONS.get((current, target), frozenset())


def check_transition(order: Order, target: str, actor: Actor) -> None:
    if order.status in TERMINAL_STATUSES:
        raise OrderClosedError(
            f"Order is already {order.status}",
            order_id=order.id,
            status=order.status,
        )
    if not can_transition(order.status, target, actor.role):
        raise InvalidTransitionError(
            f"Cannot move order from {order.status} to {target} as {actor.role}",
            order_id=order.id,
            status=order.status,
            target=target,
        )


def new_event(
    order: Order,
    status: str,
    actor: Actor,
    note: str | None = None,
    at: datetime | None = None,
) -> OrderStatusEvent:
    return OrderStatusEvent(
        order_id=order.id,
        status=status,
        actor_id=actor.id,
        actor_role=actor.role,
        note=note,
        created_at=at or utcnow(),
    )


def apply_transition(
    order: Order,
    target: str,
    actor: Actor,
    note: str | None = None,
    at: datetime | None = None,
) -> OrderStatusEvent:
    """
    Validate and apply one transition in memory.

    Raises OrderClosedError on a terminal order and InvalidTransitionError
    for a pair or role missing from TRANSITIONS; the order is untouched in
    both cases. Returns the tracking event to persist.
    """
    check_transition(order, target, actor)

    at = at or utcnow()
    order.status = target
    column = STATUS_TIMESTAMPS.get(target)
    if column is not None:
        setattr(order, column, at)
    return new_event(order, target, actor, note, at)


class OrderLifecycle:
    """
    Persists transitions and their side effects.

    Never commits; callers wrap calls in a transaction.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        rating_repo: RatingRepository,
        inventory: InventoryGateway,
    ):
        self.order_repo = order_repo
        self.rating_repo = rating_repo
        self.inventory = inventory

    def transition(
        self,
        session: Session,
        order: Order,
        target: str,
        actor: Actor,
        note: str | None = None,
    ) -> OrderStatusEvent:
        previous = order.status
        event = apply_transition(order, target, actor, note)
        self.order_repo.update_order(session, order)
        self.order_repo.add_event(session, event)
        logger.info(
            "Order %s %s -> %s by %s:%s",
            order.order_number,
            previous,
            target,
            actor.role,
            actor.id,
        )
        return event

    def cancel(
        self,
        session: Session,
        order: Order,
        actor: Actor,
        reason: str | None = None,
    ) -> OrderStatusEvent:
        """
        Cancel and undo what creation did:
          - stock reserved at creation goes back to inventory
          - a completed card payment is marked refunded (the refund
            itself is executed by the payment provider)
        """
        event = self.transition(session, order, CANCELLED, actor, reason)
        order.cancellation_reason = reason

        for item in self.order_repo.list_items_for_order(session, order.id):
            if item.stock_reserved:
                self.inventory.restore_stock(session, item.product_id, item.quantity)

        if order.payment_method == "card" and order.payment_status == "completed":
            order.payment_status = "refunded"
            logger.info(
                "Refund recorded for order %s reference=%s",
                order.order_number,
                order.payment_reference,
            )

        self.order_repo.update_order(session, order)
        return event

    def rate(
        self,
        session: Session,
        order: Order,
        payload: RateOrderCommand,
    ) -> Order:
        """
        Store the customer's ratings once, after delivery, and fold them
        into the restaurant and courier averages.
        """
        if order.status != DELIVERED:
            raise InvalidStateError(
                "Only delivered orders can be rated",
                order_id=order.id,
                status=order.status,
            )
        if order.rated_at is not None:
            raise InvalidStateError("Order has already been rated", order_id=order.id)
        if payload.courier_rating is not None and order.courier_id is None:
            raise ValidationFailedError(
                "Order has no courier to rate", order_id=order.id
            )

        order.partner_rating = payload.partner_rating
        order.courier_rating = payload.courier_rating
        order.rating_comment = payload.comment
        order.rated_at = utcnow()
        self.order_repo.update_order(session, order)

        if payload.partner_rating is not None:
            self.rating_repo.record_restaurant_rating(
                session, order.partner_id, payload.partner_rating
            )
        if payload.courier_rating is not None:
            self.rating_repo.record_courier_rating(
                session, order.courier_id, payload.courier_rating
            )
        return order
