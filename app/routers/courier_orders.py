# app/routers/courier_orders.py
import uuid

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.core.auth import require_courier
from app.database import get_session
from app.gateways.inventory import SqlInventoryGateway
from app.models.user import User
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.repositories.rating_repo import RatingRepository
from app.repositories.restaurant_repo import RestaurantRepository
from app.schemas.order import (
    AvailableOrderRead,
    OrderRead,
    OrderWithItemsRead,
    TransitionNoteCommand,
)
from app.services.order_state import OrderLifecycle
from app.services.order_views import CourierOrderView

router = APIRouter(prefix="/courier/orders", tags=["Courier Orders"])

order_repo = OrderRepository()
lifecycle = OrderLifecycle(
    order_repo,
    RatingRepository(),
    SqlInventoryGateway(ProductRepository()),
)
view = CourierOrderView(order_repo, lifecycle, RestaurantRepository())


@router.get(
    "/available",
    response_model=list[AvailableOrderRead],
    dependencies=[Depends(require_courier)],
)
def list_available_orders(
    session: Session = Depends(get_session),
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
    radius_km: float | None = Query(default=None, gt=0),
):
    """
    Ready orders nobody has claimed yet, oldest first.

    With lat/lng (and optionally radius_km) each entry carries the pickup
    distance and orders farther than the radius are left out.
    """
    return view.available_orders(session, lat, lng, radius_km)


@router.get("/active", response_model=list[OrderRead])
def list_active_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_courier),
):
    """Orders the courier is currently delivering."""
    return view.active_orders(session, current_user)


@router.get("/{order_id}", response_model=OrderWithItemsRead)
def get_courier_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_courier),
):
    return view.get_order(session, current_user, order_id)


@router.post("/{order_id}/claim", response_model=OrderWithItemsRead)
def claim_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_courier),
):
    """
    Claim a ready order. First courier wins; the others get 409
    `already_claimed` and should pick another order.
    """
    return view.claim(session, current_user, order_id)


@router.post("/{order_id}/delivered", response_model=OrderWithItemsRead)
def mark_delivered(
    order_id: uuid.UUID,
    payload: TransitionNoteCommand | None = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_courier),
):
    """out_for_delivery -> delivered"""
    note = payload.note if payload is not None else None
    return view.mark_delivered(session, current_user, order_id, note)
