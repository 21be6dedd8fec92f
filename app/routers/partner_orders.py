# app/routers/partner_orders.py
import uuid

from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.core.auth import require_partner
from app.database import get_session
from app.gateways.inventory import SqlInventoryGateway
from app.models.user import User
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.repositories.rating_repo import RatingRepository
from app.repositories.restaurant_repo import RestaurantRepository
from app.schemas.order import (
    OrderRead,
    OrderStatus,
    OrderWithItemsRead,
    RejectOrderCommand,
    TransitionNoteCommand,
)
from app.services.order_state import OrderLifecycle
from app.services.order_views import PartnerOrderView

router = APIRouter(prefix="/partner/orders", tags=["Partner Orders"])

order_repo = OrderRepository()
restaurant_repo = RestaurantRepository()
lifecycle = OrderLifecycle(
    order_repo,
    RatingRepository(),
    SqlInventoryGateway(ProductRepository()),
)
view = PartnerOrderView(order_repo, lifecycle, restaurant_repo)


def _note(payload: TransitionNoteCommand | None) -> str | None:
    return payload.note if payload is not None else None


@router.get("", response_model=list[OrderRead])
def list_partner_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_partner),
    status: OrderStatus | None = None,
    skip: int = 0,
    limit: int = 50,
):
    """
    Orders placed at any restaurant owned by the current partner.
    """
    return view.list_orders(session, current_user, status, skip, limit)


@router.get("/{order_id}", response_model=OrderWithItemsRead)
def get_partner_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_partner),
):
    return view.get_order(session, current_user, order_id)


@router.post("/{order_id}/accept", response_model=OrderWithItemsRead)
def accept_order(
    order_id: uuid.UUID,
    payload: TransitionNoteCommand | None = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_partner),
):
    """pending -> accepted"""
    return view.accept(session, current_user, order_id, _note(payload))


@router.post("/{order_id}/reject", response_model=OrderWithItemsRead)
def reject_order(
    order_id: uuid.UUID,
    payload: RejectOrderCommand,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_partner),
):
    """
    pending/accepted -> cancelled, with a reason shown to the customer.
    """
    return view.reject(session, current_user, order_id, payload)


@router.post("/{order_id}/preparing", response_model=OrderWithItemsRead)
def start_preparing(
    order_id: uuid.UUID,
    payload: TransitionNoteCommand | None = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_partner),
):
    """accepted -> preparing"""
    return view.start_preparing(session, current_user, order_id, _note(payload))


@router.post("/{order_id}/ready", response_model=OrderWithItemsRead)
def mark_ready(
    order_id: uuid.UUID,
    payload: TransitionNoteCommand | None = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_partner),
):
    """preparing -> ready_for_pickup; the order enters the courier pool."""
    return view.mark_ready(session, current_user, order_id, _note(payload))
