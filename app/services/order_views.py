# app/services/order_views.py
"""
Role-scoped surfaces over the same Order aggregate.

Each view only sees the orders its actor owns (customer: placed by them,
partner: placed at one of their restaurants, courier: claimed by them or
still unclaimed in the pool). Anything else is reported as not found.
"""

import logging
import uuid

from sqlmodel import Session

from app.core.errors import (
    AlreadyClaimedError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    OrderClosedError,
    PaymentFailedError,
    PaymentUnavailableError,
)
from app.core.timeutils import utcnow
from app.database import transaction
from app.gateways.payment import PaymentGateway, PaymentGatewayUnavailable
from app.models.order import Order, OrderItem, OrderStatusEvent
from app.models.user import User
from app.repositories.order_repo import OrderRepository
from app.repositories.restaurant_repo import RestaurantRepository
from app.schemas.order import (
    AvailableOrderRead,
    CancelOrderCommand,
    OrderItemRead,
    OrderRatingsRead,
    OrderRead,
    OrderStatusEventRead,
    OrderTrackingRead,
    OrderWithItemsRead,
    RateOrderCommand,
    RejectOrderCommand,
    SelectedOptionRead,
    UnavailableItemRead,
)
from app.services.geo_pricing import distance_km
from app.services.order_state import (
    ACCEPTED,
    DELIVERED,
    OUT_FOR_DELIVERY,
    PREPARING,
    READY_FOR_PICKUP,
    TERMINAL_STATUSES,
    Actor,
    OrderLifecycle,
    new_event,
)

logger = logging.getLogger(__name__)

COURIER_POOL_LIMIT = 20

STATUS_PROGRESS = {
    "pending": 10,
    "accepted": 25,
    "preparing": 50,
    "ready_for_pickup": 70,
    "out_for_delivery": 85,
    "delivered": 100,
    "cancelled": 0,
}

STATUS_DESCRIPTIONS = {
    "pending": "Waiting for the restaurant to confirm your order",
    "accepted": "The restaurant accepted your order",
    "preparing": "Your order is being prepared",
    "ready_for_pickup": "Your order is ready and waiting for a courier",
    "out_for_delivery": "A courier is on the way with your order",
    "delivered": "Your order has been delivered",
    "cancelled": "This order was cancelled",
}

NEXT_STEPS = {
    "pending": "The restaurant will accept your order shortly",
    "accepted": "The kitchen will start preparing your order",
    "preparing": "A courier will be assigned once the order is ready",
    "ready_for_pickup": "A courier will pick up your order",
    "out_for_delivery": "Your order will arrive soon",
    "delivered": "Enjoy your meal and rate your order",
    "cancelled": "No further action is needed",
}


# -------- read model builders --------


def to_event_read(event: OrderStatusEvent) -> OrderStatusEventRead:
    return OrderStatusEventRead(
        status=event.status,
        actor_id=event.actor_id,
        actor_role=event.actor_role,
        note=event.note,
        created_at=event.created_at,
    )


def to_item_read(item: OrderItem) -> OrderItemRead:
    return OrderItemRead(
        id=item.id,
        product_id=item.product_id,
        title=item.title,
        unit_price=item.unit_price,
        image_url=item.image_url,
        quantity=item.quantity,
        selected_options=[SelectedOptionRead(**o) for o in item.selected_options],
        options_price=item.options_price,
        item_total=item.item_total,
        special_requests=item.special_requests,
    )


def to_order_read(order: Order) -> OrderRead:
    return OrderRead.model_validate(order, from_attributes=True)


def build_order_detail(
    order: Order,
    items: list[OrderItem],
    events: list[OrderStatusEvent],
) -> OrderWithItemsRead:
    """
    Compose OrderWithItemsRead from ORM rows.
    """
    ratings = None
    if order.rated_at is not None:
        ratings = OrderRatingsRead(
            partner_rating=order.partner_rating,
            courier_rating=order.courier_rating,
            comment=order.rating_comment,
            rated_at=order.rated_at,
        )

    return OrderWithItemsRead(
        **to_order_read(order).model_dump(),
        items=[to_item_read(it) for it in items],
        availability_validated_at=order.availability_validated_at,
        unavailable_items=[UnavailableItemRead(**u) for u in order.unavailable_items],
        contact_name=order.contact_name,
        contact_phone=order.contact_phone,
        contact_email=order.contact_email,
        special_requests=order.special_requests,
        estimated_delivery_at=order.estimated_delivery_at,
        cancellation_reason=order.cancellation_reason,
        ratings=ratings,
        tracking=[to_event_read(e) for e in events],
    )


class _OrderView:
    """
    Shared plumbing: ownership-checked lookup and detail building.
    """

    role = ""

    def __init__(self, order_repo: OrderRepository, lifecycle: OrderLifecycle):
        self.order_repo = order_repo
        self.lifecycle = lifecycle

    def _owns(self, session: Session, user: User, order: Order) -> bool:
        raise NotImplementedError

    def _actor(self, user: User) -> Actor:
        return Actor(id=user.id, role=self.role)

    def _get_owned(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Order:
        order = self.order_repo.get_by_id(session, order_id, for_update=for_update)
        if order is None or not self._owns(session, user, order):
            raise NotFoundError("Order not found", order_id=order_id)
        return order

    def _detail(self, session: Session, order: Order) -> OrderWithItemsRead:
        return build_order_detail(
            order,
            self.order_repo.list_items_for_order(session, order.id),
            self.order_repo.list_events(session, order.id),
        )

    def get_order(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        order = self._get_owned(session, user, order_id)
        return self._detail(session, order)

    def _transition(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
        target: str,
        note: str | None = None,
    ) -> OrderWithItemsRead:
        with transaction(session):
            order = self._get_owned(session, user, order_id, for_update=True)
            self.lifecycle.transition(session, order, target, self._actor(user), note)
            result = self._detail(session, order)
        return result


class CustomerOrderView(_OrderView):
    """
    Customer surface: own orders, tracking, cancel, rate, retry payment.
    """

    role = "customer"

    def __init__(
        self,
        order_repo: OrderRepository,
        lifecycle: OrderLifecycle,
        payment_gateway: PaymentGateway,
    ):
        super().__init__(order_repo, lifecycle)
        self.payment_gateway = payment_gateway

    def _owns(self, session: Session, user: User, order: Order) -> bool:
        return order.customer_id == user.id

    def list_orders(
        self,
        session: Session,
        user: User,
        status: str | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderRead]:
        orders = self.order_repo.list_for_customer(session, user.id, status, skip, limit)
        return [to_order_read(o) for o in orders]

    def track(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
    ) -> OrderTrackingRead:
        order = self._get_owned(session, user, order_id)
        events = self.order_repo.list_events(session, order.id)
        return OrderTrackingRead(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            status_description=STATUS_DESCRIPTIONS[order.status],
            progress=STATUS_PROGRESS[order.status],
            next_step=NEXT_STEPS[order.status],
            estimated_delivery_at=order.estimated_delivery_at,
            tracking=[to_event_read(e) for e in events],
        )

    def cancel(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
        payload: CancelOrderCommand,
    ) -> OrderWithItemsRead:
        with transaction(session):
            order = self._get_owned(session, user, order_id, for_update=True)
            self.lifecycle.cancel(session, order, self._actor(user), payload.reason)
            result = self._detail(session, order)
        return result

    def rate(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
        payload: RateOrderCommand,
    ) -> OrderWithItemsRead:
        with transaction(session):
            order = self._get_owned(session, user, order_id, for_update=True)
            self.lifecycle.rate(session, order, payload)
            result = self._detail(session, order)
        return result

    def retry_payment(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Charge again a card order whose payment failed.

        Rules:
          - only card orders with payment_status='failed'
          - not on delivered/cancelled orders
          - every attempt uses a new gateway idempotency key
          - decline -> PaymentFailedError; the attempt is recorded so the
            next retry is a fresh charge
          - gateway timeout -> PaymentUnavailableError, order unchanged;
            the next retry resends the same attempt
        """
        with transaction(session):
            order = self._get_owned(session, user, order_id, for_update=True)
            if order.status in TERMINAL_STATUSES:
                raise OrderClosedError(
                    f"Order is already {order.status}", order_id=order.id
                )
            if order.payment_method != "card" or order.payment_status != "failed":
                raise InvalidStateError(
                    "Only failed card payments can be retried",
                    order_id=order.id,
                    payment_status=order.payment_status,
                )

            attempt = order.payment_attempts + 1
            try:
                result = self.payment_gateway.charge(
                    order.id, order.total_price, "card", attempt=attempt
                )
            except PaymentGatewayUnavailable as exc:
                raise PaymentUnavailableError(
                    "Payment service unavailable, please retry later",
                    order_id=order.id,
                ) from exc

            order.payment_attempts = attempt
            order.payment_reference = result.reference
            if result.success:
                order.payment_status = "completed"
                logger.info("Payment retry succeeded order=%s", order.order_number)
            else:
                logger.warning(
                    "Payment retry declined order=%s attempt=%s reason=%s",
                    order.order_number,
                    attempt,
                    result.reason,
                )
            self.order_repo.update_order(session, order)
            detail = self._detail(session, order)

        if not result.success:
            raise PaymentFailedError(
                "Payment was declined", order_id=order_id, reason=result.reason
            )
        return detail


class PartnerOrderView(_OrderView):
    """
    Partner surface: orders of the restaurants the partner owns.
    """

    role = "partner"

    def __init__(
        self,
        order_repo: OrderRepository,
        lifecycle: OrderLifecycle,
        restaurant_repo: RestaurantRepository,
    ):
        super().__init__(order_repo, lifecycle)
        self.restaurant_repo = restaurant_repo

    def _owns(self, session: Session, user: User, order: Order) -> bool:
        return order.partner_id in self.restaurant_repo.list_ids_for_owner(session, user.id)

    def list_orders(
        self,
        session: Session,
        user: User,
        status: str | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderRead]:
        partner_ids = self.restaurant_repo.list_ids_for_owner(session, user.id)
        orders = self.order_repo.list_for_partners(session, partner_ids, status, skip, limit)
        return [to_order_read(o) for o in orders]

    def accept(self, session: Session, user: User, order_id: uuid.UUID, note: str | None = None):
        return self._transition(session, user, order_id, ACCEPTED, note)

    def start_preparing(
        self, session: Session, user: User, order_id: uuid.UUID, note: str | None = None
    ):
        return self._transition(session, user, order_id, PREPARING, note)

    def mark_ready(self, session: Session, user: User, order_id: uuid.UUID, note: str | None = None):
        return self._transition(session, user, order_id, READY_FOR_PICKUP, note)

    def reject(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
        payload: RejectOrderCommand,
    ) -> OrderWithItemsRead:
        """Cancel on the partner's side, with a mandatory reason."""
        with transaction(session):
            order = self._get_owned(session, user, order_id, for_update=True)
            self.lifecycle.cancel(session, order, self._actor(user), payload.reason)
            result = self._detail(session, order)
        return result


class CourierOrderView(_OrderView):
    """
    Courier surface: the pool of ready orders, claiming, delivering.
    """

    role = "courier"

    def __init__(
        self,
        order_repo: OrderRepository,
        lifecycle: OrderLifecycle,
        restaurant_repo: RestaurantRepository,
    ):
        super().__init__(order_repo, lifecycle)
        self.restaurant_repo = restaurant_repo

    def _owns(self, session: Session, user: User, order: Order) -> bool:
        return order.courier_id == user.id

    def available_orders(
        self,
        session: Session,
        lat: float | None = None,
        lng: float | None = None,
        radius_km: float | None = None,
    ) -> list[AvailableOrderRead]:
        """
        Ready, unclaimed orders, oldest first. With a position and radius
        only orders whose pickup point lies within the radius are listed.
        """
        result: list[AvailableOrderRead] = []
        for order in self.order_repo.list_ready_unclaimed(session, limit=COURIER_POOL_LIMIT):
            restaurant = self.restaurant_repo.get_by_id(session, order.partner_id)
            if restaurant is None:
                continue

            pickup_distance = None
            if lat is not None and lng is not None:
                pickup_distance = round(
                    distance_km(lat, lng, restaurant.lat, restaurant.lng), 2
                )
                if radius_km is not None and pickup_distance > radius_km:
                    continue

            result.append(
                AvailableOrderRead(
                    **to_order_read(order).model_dump(),
                    restaurant_name=restaurant.name,
                    pickup_lat=restaurant.lat,
                    pickup_lng=restaurant.lng,
                    pickup_distance_km=pickup_distance,
                    ready_at=order.ready_at,
                )
            )
        return result

    def active_orders(self, session: Session, user: User) -> list[OrderRead]:
        orders = self.order_repo.list_for_courier(session, user.id, OUT_FOR_DELIVERY)
        return [to_order_read(o) for o in orders]

    def claim(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        ready_for_pickup -> out_for_delivery, first courier wins.

        The claim is one conditional UPDATE; a courier that loses the race
        gets AlreadyClaimedError and should pick another order from the pool.
        """
        with transaction(session):
            now = utcnow()
            if not self.order_repo.claim_for_courier(session, order_id, user.id, now):
                # Lost or invalid: re-read the current row to explain why
                session.expire_all()
                order = self.order_repo.get_by_id(session, order_id)
                if order is None:
                    raise NotFoundError("Order not found", order_id=order_id)
                if order.status in TERMINAL_STATUSES:
                    raise OrderClosedError(
                        f"Order is already {order.status}", order_id=order_id
                    )
                if order.courier_id is not None:
                    raise AlreadyClaimedError(
                        "Order was already claimed by another courier",
                        order_id=order_id,
                    )
                raise InvalidTransitionError(
                    f"Order is {order.status}, not ready for pickup",
                    order_id=order_id,
                    status=order.status,
                )

            session.expire_all()
            order = self.order_repo.get_by_id(session, order_id)
            self.order_repo.add_event(
                session,
                new_event(order, OUT_FOR_DELIVERY, self._actor(user), "Claimed by courier", now),
            )
            logger.info("Order %s claimed by courier %s", order.order_number, user.id)
            result = self._detail(session, order)
        return result

    def mark_delivered(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
        note: str | None = None,
    ) -> OrderWithItemsRead:
        """
        out_for_delivery -> delivered. Cash is collected at the door, so a
        pending cash payment is completed here.
        """
        with transaction(session):
            order = self._get_owned(session, user, order_id, for_update=True)
            self.lifecycle.transition(session, order, DELIVERED, self._actor(user), note)
            if order.payment_method == "cash" and order.payment_status == "pending":
                order.payment_status = "completed"
                self.order_repo.update_order(session, order)
            result = self._detail(session, order)
        return result
