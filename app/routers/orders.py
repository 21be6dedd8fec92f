# app/routers/orders.py
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.core.auth import get_session_id, require_customer
from app.database import get_session
from app.gateways.inventory import SqlInventoryGateway
from app.gateways.payment import get_payment_gateway
from app.models.user import User
from app.repositories.cart_repo import CartRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.repositories.rating_repo import RatingRepository
from app.repositories.restaurant_repo import RestaurantRepository
from app.repositories.zone_repo import ZoneRepository
from app.schemas.order import (
    CancelOrderCommand,
    CreateOrderCommand,
    OrderCreatedRead,
    OrderRead,
    OrderStatus,
    OrderTrackingRead,
    OrderWithItemsRead,
    RateOrderCommand,
)
from app.services.cart_service import CartService
from app.services.order_service import OrderService
from app.services.order_state import OrderLifecycle
from app.services.order_views import CustomerOrderView

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository()
cart_repo = CartRepository()
product_repo = ProductRepository()
restaurant_repo = RestaurantRepository()
inventory = SqlInventoryGateway(product_repo)
payment_gateway = get_payment_gateway()

cart_service = CartService(cart_repo, product_repo, restaurant_repo, ZoneRepository())
order_service = OrderService(
    order_repo,
    cart_repo,
    restaurant_repo,
    cart_service,
    inventory,
    payment_gateway,
)
view = CustomerOrderView(
    order_repo,
    OrderLifecycle(order_repo, RatingRepository(), inventory),
    payment_gateway,
)


@router.post(
    "",
    response_model=OrderCreatedRead,
    status_code=status.HTTP_201_CREATED,
)
def create_order(
    payload: CreateOrderCommand,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
    session_id: str | None = Depends(get_session_id),
):
    """
    Create an order from the current customer's cart.

    Items that became unavailable are dropped and listed in `warnings`,
    together with the price adjustment. A declined card still creates
    the order (payment_status='failed'); a payment gateway timeout does not
    (503, retryable).
    """
    return order_service.create_order_from_cart(
        session, current_user.id, session_id, payload
    )


@router.get("", response_model=list[OrderRead])
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    skip: int = 0,
    limit: int = 50,
):
    """
    List the authenticated customer's orders (without items), newest first.
    """
    return view.list_orders(session, current_user, status_filter, skip, limit)


@router.get("/{order_id}", response_model=OrderWithItemsRead)
def get_my_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
):
    """
    Get a single order (with items and tracking log) of the current customer.
    """
    return view.get_order(session, current_user, order_id)


@router.get("/{order_id}/tracking", response_model=OrderTrackingRead)
def track_my_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
):
    """
    Progress, status description and next step for an order.
    """
    return view.track(session, current_user, order_id)


@router.post("/{order_id}/cancel", response_model=OrderWithItemsRead)
def cancel_my_order(
    order_id: uuid.UUID,
    payload: CancelOrderCommand,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
):
    """
    Cancel a pending or accepted order. Reserved stock is restored and a
    completed card payment is marked refunded.
    """
    return view.cancel(session, current_user, order_id, payload)


@router.post("/{order_id}/rating", response_model=OrderWithItemsRead)
def rate_my_order(
    order_id: uuid.UUID,
    payload: RateOrderCommand,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
):
    """
    Rate a delivered order (once).
    """
    return view.rate(session, current_user, order_id, payload)


@router.post("/{order_id}/retry-payment", response_model=OrderWithItemsRead)
def retry_payment(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
):
    """
    Charge again a card order whose payment failed.
    """
    return view.retry_payment(session, current_user, order_id)
