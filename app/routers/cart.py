# app/routers/cart.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import get_session_id, require_customer
from app.database import get_session
from app.models.user import User
from app.repositories.cart_repo import CartRepository
from app.repositories.product_repo import ProductRepository
from app.repositories.restaurant_repo import RestaurantRepository
from app.repositories.zone_repo import ZoneRepository
from app.schemas.cart import (
    AddCartItemCommand,
    AddCartItemResult,
    CartSummary,
    ClearCartResult,
    DeliveryQuoteRequest,
    DeliveryQuoteResult,
    RemoveCartItemResult,
    UpdateCartItemCommand,
    UpdateCartItemResult,
)
from app.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["Cart"])

cart_repo = CartRepository()
product_repo = ProductRepository()
restaurant_repo = RestaurantRepository()
zone_repo = ZoneRepository()
service = CartService(cart_repo, product_repo, restaurant_repo, zone_repo)


@router.get("", response_model=CartSummary)
def get_my_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
    session_id: str | None = Depends(get_session_id),
):
    """
    Get the current customer's active cart.

    `cart` is null when there is no active cart (or it has no items).
    """
    return service.get_cart_summary(session, current_user.id, session_id)


@router.post(
    "/items",
    response_model=AddCartItemResult,
    status_code=status.HTTP_201_CREATED,
)
def add_cart_item(
    payload: AddCartItemCommand,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
    session_id: str | None = Depends(get_session_id),
):
    """
    Add a product to the cart. The cart is created on the first add.

    Fails with 409 when the cart holds items from another restaurant.
    """
    return service.add_item(session, current_user.id, session_id, payload)


@router.patch("/items/{item_id}", response_model=UpdateCartItemResult)
def update_cart_item(
    item_id: uuid.UUID,
    payload: UpdateCartItemCommand,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
    session_id: str | None = Depends(get_session_id),
):
    """
    Update quantity, options or special requests of a cart line.
    """
    return service.update_item(
        session=session,
        customer_id=current_user.id,
        session_id=session_id,
        item_id=item_id,
        payload=payload,
    )


@router.delete("/items/{item_id}", response_model=RemoveCartItemResult)
def remove_cart_item(
    item_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
    session_id: str | None = Depends(get_session_id),
):
    """
    Remove a line from the cart. `cart` is null when it was the last line.
    """
    return service.remove_item(session, current_user.id, session_id, item_id)


@router.delete("", response_model=ClearCartResult)
def clear_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
    session_id: str | None = Depends(get_session_id),
):
    """
    Clear the entire cart.
    """
    return service.clear_cart(session, current_user.id, session_id)


@router.post("/delivery-quote", response_model=DeliveryQuoteResult)
def quote_delivery(
    payload: DeliveryQuoteRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
    session_id: str | None = Depends(get_session_id),
):
    """
    Quote delivery to an address and store it on the cart.

    422 `out_of_range` when no zone delivers there.
    """
    return service.quote_delivery(session, current_user.id, session_id, payload)
