# app/services/order_service.py
import logging
import uuid
from datetime import timedelta

from sqlmodel import Session

from app.core.config import Settings, get_settings
from app.core.errors import (
    EmptyOrderError,
    MinimumNotMetError,
    NotFoundError,
    PaymentUnavailableError,
    ValidationFailedError,
)
from app.core.timeutils import utcnow
from app.database import transaction
from app.gateways.inventory import InventoryGateway, ProductAvailability
from app.gateways.payment import PaymentGateway, PaymentGatewayUnavailable, PaymentResult
from app.models.cart import Cart, CartItem
from app.models.order import Order, OrderItem
from app.repositories.cart_repo import CartRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.restaurant_repo import RestaurantRepository
from app.schemas.order import (
    CreateOrderCommand,
    OrderCreatedRead,
    OrderWarnings,
    PriceAdjustment,
    UnavailableItemRead,
)
from app.services.cart_service import CartService
from app.services.order_state import PENDING, Actor, new_event
from app.services.order_views import build_order_detail
from app.services.pricing import PricingBreakdown, compute_pricing

logger = logging.getLogger(__name__)

REASON_NOT_FOUND = "product_not_found"
REASON_DEACTIVATED = "product_deactivated"
REASON_UNAVAILABLE = "product_unavailable"
REASON_INSUFFICIENT_STOCK = "insufficient_stock"


def partition_items(
    cart: Cart,
    items: list[CartItem],
    current: dict[uuid.UUID, ProductAvailability],
) -> tuple[list[CartItem], list[dict]]:
    """
    Split cart lines into survivors and dropped lines using the current
    catalog state (never the cart snapshot).

    Several lines of the same stock-tracked product share its stock; a
    line is dropped once the running total would exceed it.
    """
    survivors: list[CartItem] = []
    dropped: list[dict] = []
    reserved: dict[uuid.UUID, int] = {}

    for item in items:
        product = current.get(item.product_id)
        available_quantity = None
        if product is None or product.restaurant_id != cart.restaurant_id:
            reason = REASON_NOT_FOUND
        elif not product.active:
            reason = REASON_DEACTIVATED
        elif not product.available:
            reason = REASON_UNAVAILABLE
        elif product.is_stock_tracked and (
            reserved.get(product.id, 0) + item.quantity > product.stock
        ):
            reason = REASON_INSUFFICIENT_STOCK
            available_quantity = product.stock - reserved.get(product.id, 0)
        else:
            reason = None

        if reason is None:
            if product.is_stock_tracked:
                reserved[product.id] = reserved.get(product.id, 0) + item.quantity
            survivors.append(item)
            continue

        dropped.append(
            {
                "product_id": str(item.product_id),
                "title": item.product_title,
                "reason": reason,
                "requested_quantity": item.quantity,
                "available_quantity": available_quantity,
            }
        )
    return survivors, dropped


class OrderService:
    """
    Order creation transaction.

    Responsibilities:
      - turn the customer's active cart into an immutable order
      - re-validate every item against the current catalog
      - reserve stock for stock-tracked items
      - charge card payments
      - convert the cart
    all inside one database transaction.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        cart_repo: CartRepository,
        restaurant_repo: RestaurantRepository,
        cart_service: CartService,
        inventory: InventoryGateway,
        payment_gateway: PaymentGateway,
        settings: Settings | None = None,
    ):
        self.order_repo = order_repo
        self.cart_repo = cart_repo
        self.restaurant_repo = restaurant_repo
        self.cart_service = cart_service
        self.inventory = inventory
        self.payment_gateway = payment_gateway
        self.settings = settings or get_settings()

    def create_order_from_cart(
        self,
        session: Session,
        customer_id: uuid.UUID,
        session_id: str | None,
        payload: CreateOrderCommand,
    ) -> OrderCreatedRead:
        """
        Convert the customer's active cart into an Order.

        Steps:
          1. Lock the active cart; 404 if absent, expired or empty.
          2. Re-fetch current product state from inventory.
          3. Drop unavailable lines; EmptyOrder if nothing survives.
          4. Recompute pricing from survivors (reuse cart pricing otherwise).
          5. Enforce the restaurant minimum on the resulting subtotal.
          6. Allocate ORD-YYYYMMDD-NNNN.
          7. Insert order, frozen items and the first tracking entry.
          8. Decrement stock (conditional; InsufficientStock aborts).
          9. Card: charge. Decline keeps the order as payment_status=failed;
             gateway timeout aborts everything. Cash: pending.
         10. Mark the cart converted.
         11. Commit. On failure everything above is rolled back, and a
             charge that already went through is refunded.
        """
        charged: PaymentResult | None = None
        charged_amount = None

        try:
            with transaction(session):
                # 1) Lock and re-validate the cart
                cart = self.cart_service.get_active_cart(
                    session, customer_id, session_id, for_update=True
                )
                if cart is None:
                    raise NotFoundError("No active cart")
                items = self.cart_repo.list_items(session, cart.id)
                if not items:
                    raise NotFoundError("Cart is empty", cart_id=cart.id)

                restaurant = self.restaurant_repo.get_by_id(session, cart.restaurant_id)
                if restaurant is None or not restaurant.is_active or not restaurant.is_approved:
                    raise ValidationFailedError(
                        "Restaurant is not accepting orders",
                        restaurant_id=cart.restaurant_id,
                    )

                # 2) Current catalog state
                current = {
                    p.id: p
                    for p in self.inventory.get_available(
                        session, [it.product_id for it in items]
                    )
                }

                # 3) Partition
                survivors, dropped = partition_items(cart, items, current)
                if not survivors:
                    raise EmptyOrderError(
                        "None of the items in the cart are available anymore",
                        unavailable_items=dropped,
                    )
                if dropped:
                    logger.warning(
                        "Dropping %s unavailable item(s) from cart %s",
                        len(dropped),
                        cart.id,
                    )

                # 4) Pricing
                if dropped:
                    pricing = compute_pricing(
                        (it.item_total for it in survivors),
                        delivery_fee=cart.delivery_fee,
                        service_fee_rate=self.settings.SERVICE_FEE_RATE,
                        discount_amount=cart.discount_amount,
                    )
                else:
                    pricing = PricingBreakdown(
                        subtotal=cart.subtotal,
                        delivery_fee=cart.delivery_fee,
                        service_fee=cart.service_fee,
                        discount_amount=cart.discount_amount,
                        total_price=cart.total_price,
                    )

                # 5) Minimum order
                if pricing.subtotal < cart.min_order_amount:
                    raise MinimumNotMetError(
                        "Order does not reach the restaurant minimum",
                        subtotal=pricing.subtotal,
                        min_order_amount=cart.min_order_amount,
                    )

                # 6) Order number
                now = utcnow()
                order_number = self.order_repo.next_order_number(session, now.date())

                # 7) Order, items, first tracking entry
                address = payload.delivery_address
                contact = payload.customer_contact
                order = Order(
                    order_number=order_number,
                    customer_id=customer_id,
                    partner_id=cart.restaurant_id,
                    cart_id=cart.id,
                    subtotal=pricing.subtotal,
                    delivery_fee=pricing.delivery_fee,
                    service_fee=pricing.service_fee,
                    discount_amount=pricing.discount_amount,
                    total_price=pricing.total_price,
                    availability_validated_at=now,
                    unavailable_items=dropped,
                    delivery_address=address.address,
                    delivery_lat=address.lat,
                    delivery_lng=address.lng,
                    delivery_postal_code=address.postal_code,
                    apartment=address.apartment,
                    delivery_notes=address.delivery_notes,
                    contact_name=contact.name,
                    contact_phone=contact.phone,
                    contact_email=contact.email,
                    payment_method=payload.payment_method,
                    payment_status="pending",
                    status=PENDING,
                    special_requests=payload.special_requests,
                    estimated_delivery_at=(
                        now + timedelta(minutes=cart.delivery_eta_minutes)
                        if cart.delivery_eta_minutes
                        else None
                    ),
                    created_at=now,
                )
                self.order_repo.create_order(session, order)

                order_items = [
                    OrderItem(
                        order_id=order.id,
                        product_id=it.product_id,
                        title=it.product_title,
                        unit_price=it.product_price,
                        image_url=it.product_image_url,
                        category=it.product_category,
                        quantity=it.quantity,
                        selected_options=list(it.selected_options),
                        options_price=it.options_price,
                        item_total=it.item_total,
                        special_requests=it.special_requests,
                        stock_reserved=current[it.product_id].is_stock_tracked,
                    )
                    for it in survivors
                ]
                self.order_repo.create_items(session, order_items)

                self.order_repo.add_event(
                    session,
                    new_event(
                        order,
                        PENDING,
                        Actor(id=customer_id, role="customer"),
                        "Order created by customer",
                        now,
                    ),
                )

                # 8) Stock
                for oi in order_items:
                    if oi.stock_reserved:
                        self.inventory.decrement_stock(session, oi.product_id, oi.quantity)

                # 9) Payment
                payment_failure = None
                if payload.payment_method == "card":
                    order.payment_attempts = 1
                    try:
                        result = self.payment_gateway.charge(
                            order.id, order.total_price, "card", attempt=1
                        )
                    except PaymentGatewayUnavailable as exc:
                        raise PaymentUnavailableError(
                            "Payment service unavailable; the order was not placed, "
                            "please retry",
                        ) from exc

                    if result.success:
                        charged, charged_amount = result, order.total_price
                        order.payment_status = "completed"
                        order.payment_reference = result.reference
                    else:
                        payment_failure = result.reason or "declined"
                        order.payment_status = "failed"
                        order.payment_reference = result.reference
                        logger.warning(
                            "Card declined for order %s: %s",
                            order_number,
                            payment_failure,
                        )
                self.order_repo.update_order(session, order)

                # 10) Cart conversion
                self.cart_service.convert_to_order(session, cart)

                warnings = self._build_warnings(cart, pricing, dropped, payment_failure)
                detail = build_order_detail(
                    order,
                    order_items,
                    self.order_repo.list_events(session, order.id),
                )
        except Exception:
            if charged is not None:
                self._refund_after_rollback(charged, charged_amount)
            raise

        logger.info(
            "Order %s created customer=%s total=%s payment=%s/%s",
            detail.order_number,
            customer_id,
            detail.total_price,
            detail.payment_method,
            detail.payment_status,
        )
        return OrderCreatedRead(order=detail, warnings=warnings)

    @staticmethod
    def _build_warnings(
        cart: Cart,
        pricing: PricingBreakdown,
        dropped: list[dict],
        payment_failure: str | None,
    ) -> OrderWarnings | None:
        if not dropped and payment_failure is None:
            return None

        messages = []
        adjustment = None
        if dropped:
            messages.append(
                f"{len(dropped)} item(s) were no longer available and were removed"
            )
            adjustment = PriceAdjustment(
                original_total=cart.total_price,
                new_total=pricing.total_price,
                difference=cart.total_price - pricing.total_price,
            )
        if payment_failure is not None:
            messages.append("Card payment failed; you can retry the payment")

        return OrderWarnings(
            message=". ".join(messages),
            unavailable_items=[UnavailableItemRead(**d) for d in dropped],
            price_adjustment=adjustment,
            payment_failure=payment_failure,
        )

    def _refund_after_rollback(self, charged: PaymentResult, amount) -> None:
        """
        The charge went through but the order did not commit: give the
        money back. A failed refund is logged for manual follow-up.
        """
        try:
            refunded = self.payment_gateway.refund(charged.reference, amount)
        except PaymentGatewayUnavailable:
            logger.exception(
                "Refund failed after rollback reference=%s amount=%s",
                charged.reference,
                amount,
            )
            return
        if refunded:
            logger.warning(
                "Charge refunded after rollback reference=%s amount=%s",
                charged.reference,
                amount,
            )
        else:
            logger.error(
                "Refund rejected after rollback reference=%s amount=%s",
                charged.reference,
                amount,
            )
