# app/services/cart_service.py
import logging
import uuid
from datetime import timedelta
from decimal import Decimal

from sqlmodel import Session

from app.core.config import Settings, get_settings
from app.core.errors import (
    InvalidStateError,
    NotFoundError,
    OutOfRangeError,
    RestaurantMismatchError,
    ValidationFailedError,
)
from app.core.money import ZERO, to_money
from app.core.timeutils import ensure_utc, utcnow
from app.database import transaction
from app.models.cart import (
    Cart,
    CartItem,
    CART_STATUS_ACTIVE,
    CART_STATUS_ABANDONED,
    CART_STATUS_CONVERTED,
)
from app.models.product import Product
from app.repositories.cart_repo import CartRepository
from app.repositories.product_repo import ProductRepository
from app.repositories.restaurant_repo import RestaurantRepository
from app.repositories.zone_repo import ZoneRepository
from app.schemas.cart import (
    AddCartItemCommand,
    AddCartItemResult,
    CartDeliveryInfo,
    CartItemRead,
    CartPricing,
    CartRead,
    CartSummary,
    ClearCartResult,
    DeliveryQuoteRequest,
    DeliveryQuoteResult,
    RemoveCartItemResult,
    SelectedOption,
    UpdateCartItemCommand,
    UpdateCartItemResult,
)
from app.services.geo_pricing import OutOfRange, quote_for_destination
from app.services.pricing import compute_pricing, empty_pricing, line_total

logger = logging.getLogger(__name__)


class CartService:
    """
    Business logic for the cart aggregate.

    Responsibilities:
      - one active cart per customer (optionally scoped to a client session)
      - every item comes from the cart's restaurant
      - product snapshot (title, price, image, category) taken at add time
      - option prices taken from the product's live option schema
      - pricing recomputed after every mutation
      - delivery quote through the GeoPricing engine
    """

    def __init__(
        self,
        cart_repo: CartRepository,
        product_repo: ProductRepository,
        restaurant_repo: RestaurantRepository,
        zone_repo: ZoneRepository,
        settings: Settings | None = None,
    ):
        self.cart_repo = cart_repo
        self.product_repo = product_repo
        self.restaurant_repo = restaurant_repo
        self.zone_repo = zone_repo
        self.settings = settings or get_settings()

    # ---- lookups ----

    def get_active_cart(
        self,
        session: Session,
        customer_id: uuid.UUID,
        session_id: str | None = None,
        *,
        restaurant_id: uuid.UUID | None = None,
        for_update: bool = False,
    ) -> Cart | None:
        """
        Active, non-expired cart or None. An expired cart the reaper has
        not reached yet is treated as absent.
        """
        cart = self.cart_repo.find_active(
            session,
            customer_id,
            session_id,
            restaurant_id=restaurant_id,
            for_update=for_update,
        )
        if cart is None:
            return None
        if ensure_utc(cart.expires_at) <= utcnow():
            return None
        return cart

    def _require_cart(
        self,
        session: Session,
        customer_id: uuid.UUID,
        session_id: str | None,
    ) -> Cart:
        cart = self.get_active_cart(session, customer_id, session_id, for_update=True)
        if cart is None:
            raise NotFoundError("No active cart")
        return cart

    def _require_item(
        self,
        session: Session,
        cart: Cart,
        item_id: uuid.UUID,
    ) -> CartItem:
        item = self.cart_repo.get_item(session, cart.id, item_id)
        if item is None:
            raise NotFoundError("Cart item not found", item_id=item_id)
        return item

    def _get_orderable_product(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.product_repo.get_by_id(session, product_id)
        if product is None:
            raise NotFoundError("Product not found", product_id=product_id)
        if not product.is_active or not product.is_available:
            raise ValidationFailedError(
                "Product is not available", product_id=product_id
            )
        return product

    @staticmethod
    def _check_stock(product: Product, other_items: list[CartItem], quantity: int) -> None:
        """Stock covers every line of this product in the cart, not just one."""
        if not product.is_stock_tracked:
            return
        in_cart = sum(it.quantity for it in other_items if it.product_id == product.id)
        if in_cart + quantity > product.stock_quantity:
            raise ValidationFailedError(
                "Not enough stock available",
                product_id=product.id,
                available_quantity=max(product.stock_quantity - in_cart, 0),
            )

    # ---- internal helpers ----

    @staticmethod
    def _resolve_options(
        product: Product,
        selected: list[SelectedOption],
    ) -> tuple[list[dict], Decimal]:
        """
        Keep only options that exist (and are available) in the product's
        live option schema; unknown ones are dropped without failing the
        call. Prices always come from the schema, never from the client.
        """
        schema: dict[tuple[str, str], Decimal] = {}
        for group in product.option_groups or []:
            group_name = str(group.get("name", "")).strip()
            for option in group.get("options") or []:
                if option.get("is_available", True) is False:
                    continue
                option_name = str(option.get("name", "")).strip()
                schema[(group_name, option_name)] = to_money(option.get("price", 0))

        resolved: list[dict] = []
        seen: set[tuple[str, str]] = set()
        total = ZERO
        for choice in selected:
            key = (choice.group_name.strip(), choice.option_name.strip())
            if key not in schema or key in seen:
                logger.info(
                    "Dropping unknown option product=%s group=%s option=%s",
                    product.id,
                    key[0],
                    key[1],
                )
                continue
            seen.add(key)
            price = schema[key]
            total += price
            resolved.append(
                {
                    "group_name": key[0],
                    "option_name": key[1],
                    "option_price": str(price),
                }
            )
        return resolved, to_money(total)

    def _touch(self, cart: Cart) -> None:
        now = utcnow()
        cart.last_activity = now
        cart.expires_at = now + timedelta(hours=self.settings.CART_TTL_HOURS)

    def _recompute(self, cart: Cart, items: list[CartItem]) -> None:
        """
        Refresh every pricing column so total_price reconciles with the
        items, the delivery fee and the service fee.
        """
        if cart.delivery_quoted_at is not None:
            delivery_fee = cart.delivery_fee
        else:
            delivery_fee = cart.restaurant_delivery_fee

        pricing = compute_pricing(
            (it.item_total for it in items),
            delivery_fee=delivery_fee,
            service_fee_rate=self.settings.SERVICE_FEE_RATE,
            discount_amount=cart.discount_amount,
        )
        self._apply_pricing(cart, pricing)
        self._touch(cart)

    @staticmethod
    def _apply_pricing(cart: Cart, pricing) -> None:
        cart.subtotal = pricing.subtotal
        cart.delivery_fee = pricing.delivery_fee
        cart.service_fee = pricing.service_fee
        cart.discount_amount = pricing.discount_amount
        cart.total_price = pricing.total_price

    @staticmethod
    def _clear_quote(cart: Cart) -> None:
        cart.delivery_address = None
        cart.delivery_lat = None
        cart.delivery_lng = None
        cart.delivery_postal_code = None
        cart.delivery_zone_number = None
        cart.delivery_distance_km = None
        cart.delivery_eta_minutes = None
        cart.delivery_quoted_at = None

    # ---- read model builders ----

    @staticmethod
    def to_item_read(item: CartItem) -> CartItemRead:
        return CartItemRead(
            id=item.id,
            product_id=item.product_id,
            product_title=item.product_title,
            product_price=item.product_price,
            product_image_url=item.product_image_url,
            product_category=item.product_category,
            quantity=item.quantity,
            selected_options=[SelectedOption(**opt) for opt in item.selected_options],
            options_price=item.options_price,
            special_requests=item.special_requests,
            item_total=item.item_total,
            added_at=item.added_at,
        )

    @staticmethod
    def delivery_info(cart: Cart) -> CartDeliveryInfo | None:
        if cart.delivery_quoted_at is None:
            return None
        return CartDeliveryInfo(
            address=cart.delivery_address,
            lat=cart.delivery_lat,
            lng=cart.delivery_lng,
            postal_code=cart.delivery_postal_code,
            zone_number=cart.delivery_zone_number,
            distance_km=cart.delivery_distance_km,
            delivery_fee=cart.delivery_fee,
            eta_minutes=cart.delivery_eta_minutes,
            quoted_at=cart.delivery_quoted_at,
        )

    def to_read(self, cart: Cart, items: list[CartItem]) -> CartRead:
        return CartRead(
            id=cart.id,
            customer_id=cart.customer_id,
            session_id=cart.session_id,
            restaurant_id=cart.restaurant_id,
            restaurant_name=cart.restaurant_name,
            restaurant_category=cart.restaurant_category,
            min_order_amount=cart.min_order_amount,
            status=cart.status,
            items=[self.to_item_read(it) for it in items],
            pricing=CartPricing(
                subtotal=cart.subtotal,
                delivery_fee=cart.delivery_fee,
                service_fee=cart.service_fee,
                discount_amount=cart.discount_amount,
                total_price=cart.total_price,
            ),
            delivery_info=self.delivery_info(cart),
            total_items=sum(it.quantity for it in items),
            meets_minimum_order=cart.subtotal >= cart.min_order_amount,
            last_activity=cart.last_activity,
            expires_at=cart.expires_at,
        )

    # ---- public operations ----

    def get_cart_summary(
        self,
        session: Session,
        customer_id: uuid.UUID,
        session_id: str | None = None,
    ) -> CartSummary:
        """
        Current active cart with item count and minimum-order flag.
        A cart with no items is reported as no cart.
        """
        cart = self.get_active_cart(session, customer_id, session_id)
        items = self.cart_repo.list_items(session, cart.id) if cart else []
        if cart is None or not items:
            return CartSummary(
                cart=None,
                total_items=0,
                subtotal=ZERO,
                total_price=ZERO,
                meets_minimum_order=False,
            )

        read = self.to_read(cart, items)
        return CartSummary(
            cart=read,
            total_items=read.total_items,
            subtotal=cart.subtotal,
            total_price=cart.total_price,
            meets_minimum_order=read.meets_minimum_order,
        )

    def add_item(
        self,
        session: Session,
        customer_id: uuid.UUID,
        session_id: str | None,
        payload: AddCartItemCommand,
    ) -> AddCartItemResult:
        """
        Add a product to the customer's cart, creating the cart on first add.

        Rules:
          - product must exist, be active and available
          - its restaurant must be active and approved
          - an active cart for another restaurant rejects the item
          - stock-tracked products cannot exceed current stock across all
            lines of the cart
          - a cart for the same restaurant held under another session id
            is reused and moves to this session
          - each call appends a new line (lines with different options
            or requests stay separate)
        """
        with transaction(session):
            product = self._get_orderable_product(session, payload.product_id)

            restaurant = self.restaurant_repo.get_by_id(session, product.restaurant_id)
            if restaurant is None or not restaurant.is_active or not restaurant.is_approved:
                raise ValidationFailedError(
                    "Restaurant is not accepting orders",
                    restaurant_id=product.restaurant_id,
                )

            cart = self.get_active_cart(session, customer_id, session_id, for_update=True)
            if cart is None and session_id is not None:
                # Another client session already holds this customer's cart
                # for the restaurant; one active cart per restaurant, so it
                # moves to the calling session.
                cart = self.get_active_cart(
                    session,
                    customer_id,
                    restaurant_id=product.restaurant_id,
                    for_update=True,
                )
                if cart is not None:
                    logger.info(
                        "Cart %s moved from session %s to %s",
                        cart.id,
                        cart.session_id,
                        session_id,
                    )
                    cart.session_id = session_id
            if cart is not None and cart.restaurant_id != product.restaurant_id:
                raise RestaurantMismatchError(
                    "Cart already contains items from another restaurant; "
                    "clear it before adding this product",
                    cart_restaurant_id=cart.restaurant_id,
                    product_restaurant_id=product.restaurant_id,
                )

            if cart is None:
                # Expired carts still marked active would collide with the
                # unique active-cart index; retire them first.
                self.cart_repo.abandon_expired(session, utcnow(), customer_id=customer_id)

                cart = Cart(
                    customer_id=customer_id,
                    session_id=session_id,
                    restaurant_id=restaurant.id,
                    restaurant_name=restaurant.name,
                    restaurant_category=restaurant.category,
                    restaurant_delivery_fee=restaurant.base_delivery_fee,
                    min_order_amount=restaurant.min_order_amount,
                )
                self.cart_repo.create(session, cart)
                logger.info(
                    "Cart created cart=%s customer=%s restaurant=%s",
                    cart.id,
                    customer_id,
                    restaurant.id,
                )

            self._check_stock(
                product,
                self.cart_repo.list_items(session, cart.id),
                payload.quantity,
            )

            options, options_price = self._resolve_options(
                product, payload.selected_options
            )
            item = CartItem(
                cart_id=cart.id,
                product_id=product.id,
                product_title=product.title,
                product_price=product.price,
                product_image_url=product.image_url,
                product_category=product.category,
                quantity=payload.quantity,
                selected_options=options,
                options_price=options_price,
                special_requests=payload.special_requests,
                item_total=line_total(product.price, options_price, payload.quantity),
            )
            self.cart_repo.add_item(session, item)

            items = self.cart_repo.list_items(session, cart.id)
            self._recompute(cart, items)
            self.cart_repo.save(session, cart)

            result = AddCartItemResult(
                cart=self.to_read(cart, items),
                added_item=self.to_item_read(item),
            )
        return result

    def update_item(
        self,
        session: Session,
        customer_id: uuid.UUID,
        session_id: str | None,
        item_id: uuid.UUID,
        payload: UpdateCartItemCommand,
    ) -> UpdateCartItemResult:
        """
        Change quantity, options or special requests of one line.

        Only fields present in the payload are touched; options are
        re-validated against the product's live schema.
        """
        fields = payload.model_fields_set
        with transaction(session):
            cart = self._require_cart(session, customer_id, session_id)
            item = self._require_item(session, cart, item_id)

            if (
                "quantity" in fields
                and payload.quantity is not None
                and payload.quantity != item.quantity
            ):
                product = self.product_repo.get_by_id(session, item.product_id)
                if product is not None and payload.quantity > item.quantity:
                    others = [
                        it
                        for it in self.cart_repo.list_items(session, cart.id)
                        if it.id != item.id
                    ]
                    self._check_stock(product, others, payload.quantity)
                item.quantity = payload.quantity

            if "selected_options" in fields:
                product = self.product_repo.get_by_id(session, item.product_id)
                if product is None:
                    raise NotFoundError("Product not found", product_id=item.product_id)
                options, options_price = self._resolve_options(
                    product, payload.selected_options or []
                )
                item.selected_options = options
                item.options_price = options_price

            if "special_requests" in fields:
                item.special_requests = payload.special_requests

            item.item_total = line_total(item.product_price, item.options_price, item.quantity)
            self.cart_repo.save_item(session, item)

            items = self.cart_repo.list_items(session, cart.id)
            self._recompute(cart, items)
            self.cart_repo.save(session, cart)

            result = UpdateCartItemResult(
                cart=self.to_read(cart, items),
                updated_item=self.to_item_read(item),
            )
        return result

    def remove_item(
        self,
        session: Session,
        customer_id: uuid.UUID,
        session_id: str | None,
        item_id: uuid.UUID,
    ) -> RemoveCartItemResult:
        """
        Remove one line. Removing the last line abandons the cart and
        reports it as absent (cart=None); the row itself is kept.
        """
        with transaction(session):
            cart = self._require_cart(session, customer_id, session_id)
            item = self._require_item(session, cart, item_id)
            removed = self.to_item_read(item)

            self.cart_repo.delete_item(session, item)
            items = self.cart_repo.list_items(session, cart.id)

            if not items:
                self._apply_pricing(cart, empty_pricing())
                self._clear_quote(cart)
                cart.status = CART_STATUS_ABANDONED
                self._touch(cart)
                self.cart_repo.save(session, cart)
                logger.info("Cart emptied cart=%s", cart.id)
                result = RemoveCartItemResult(cart=None, removed_item=removed)
            else:
                self._recompute(cart, items)
                self.cart_repo.save(session, cart)
                result = RemoveCartItemResult(
                    cart=self.to_read(cart, items),
                    removed_item=removed,
                )
        return result

    def clear_cart(
        self,
        session: Session,
        customer_id: uuid.UUID,
        session_id: str | None = None,
    ) -> ClearCartResult:
        """
        Empty the active cart: delete its items, zero the pricing, drop the
        delivery quote and mark it abandoned. The cart row stays for
        abandoned-cart reporting. No active cart clears nothing.
        """
        with transaction(session):
            cart = self.get_active_cart(session, customer_id, session_id, for_update=True)
            if cart is None:
                return ClearCartResult(cleared_items_count=0, saved_amount=ZERO)

            saved_amount = cart.total_price
            cleared = self.cart_repo.delete_items(session, cart.id)

            self._apply_pricing(cart, empty_pricing())
            self._clear_quote(cart)
            cart.status = CART_STATUS_ABANDONED
            self._touch(cart)
            self.cart_repo.save(session, cart)
            logger.info("Cart cleared cart=%s items=%s", cart.id, cleared)

        return ClearCartResult(cleared_items_count=cleared, saved_amount=saved_amount)

    def quote_delivery(
        self,
        session: Session,
        customer_id: uuid.UUID,
        session_id: str | None,
        payload: DeliveryQuoteRequest,
    ) -> DeliveryQuoteResult:
        """
        Quote delivery from the restaurant's stored coordinates to the
        given destination and store the quote on the cart.

        Out-of-range destinations raise OutOfRangeError and leave the cart
        untouched.
        """
        with transaction(session):
            cart = self._require_cart(session, customer_id, session_id)
            restaurant = self.restaurant_repo.get_by_id(session, cart.restaurant_id)
            if restaurant is None:
                raise NotFoundError("Restaurant not found", restaurant_id=cart.restaurant_id)

            quote = quote_for_destination(
                self.zone_repo.list_active(session),
                origin_lat=restaurant.lat,
                origin_lng=restaurant.lng,
                dest_lat=payload.lat,
                dest_lng=payload.lng,
                postal_code=payload.postal_code,
                settings=self.settings,
            )
            if isinstance(quote, OutOfRange):
                raise OutOfRangeError(
                    "Delivery is not available for this address",
                    reason=quote.reason,
                    distance_km=quote.distance_km,
                    max_distance_km=quote.max_distance_km,
                )

            cart.delivery_address = payload.address
            cart.delivery_lat = payload.lat
            cart.delivery_lng = payload.lng
            cart.delivery_postal_code = payload.postal_code
            cart.delivery_zone_number = quote.zone_number
            cart.delivery_distance_km = quote.distance_km
            cart.delivery_eta_minutes = quote.eta_minutes
            cart.delivery_quoted_at = utcnow()
            cart.delivery_fee = quote.fee

            items = self.cart_repo.list_items(session, cart.id)
            self._recompute(cart, items)
            self.cart_repo.save(session, cart)

            read = self.to_read(cart, items)
            result = DeliveryQuoteResult(cart=read, delivery=read.delivery_info)
        return result

    def convert_to_order(self, session: Session, cart: Cart) -> Cart:
        """
        active -> converted. Called only from the order creation
        transaction, inside its unit of work; never commits.
        """
        if cart.status != CART_STATUS_ACTIVE:
            raise InvalidStateError(
                "Cart is not active", cart_id=cart.id, status=cart.status
            )
        cart.status = CART_STATUS_CONVERTED
        cart.last_activity = utcnow()
        return self.cart_repo.save(session, cart)
