from datetime import timedelta
from decimal import Decimal

from app.core.timeutils import utcnow
from app.models.cart import CART_STATUS_ABANDONED, CART_STATUS_ACTIVE, CART_STATUS_CONVERTED, Cart
from app.repositories.cart_repo import CartRepository
from app.schemas.cart import AddCartItemCommand
from app.services.cart_reaper import CartReaper
from tests.conftest import order_command


def expire(session, cart_id):
    cart = session.get(Cart, cart_id)
    cart.expires_at = utcnow() - timedelta(minutes=1)
    session.add(cart)
    session.commit()


class TestCartReaper:
    def test_abandons_expired_active_carts(self, session, cart_service, customer, burger):
        cart_id = cart_service.add_item(
            session, customer.id, None, AddCartItemCommand(product_id=burger.id)
        ).cart.id
        expire(session, cart_id)

        assert CartReaper(CartRepository()).sweep(session) == 1

        session.expire_all()
        cart = session.get(Cart, cart_id)
        assert cart.status == CART_STATUS_ABANDONED
        # pricing is kept for abandoned-cart reporting
        assert cart.total_price == Decimal("13.70")

    def test_leaves_fresh_carts_alone(self, session, cart_service, customer, burger):
        cart_id = cart_service.add_item(
            session, customer.id, None, AddCartItemCommand(product_id=burger.id)
        ).cart.id

        assert CartReaper(CartRepository()).sweep(session) == 0
        assert session.get(Cart, cart_id).status == CART_STATUS_ACTIVE

    def test_converted_cart_is_never_touched(
        self, session, order_service, customer, filled_cart
    ):
        order_service.create_order_from_cart(session, customer.id, None, order_command())
        expire(session, filled_cart.id)

        assert CartReaper(CartRepository()).sweep(session) == 0
        assert session.get(Cart, filled_cart.id).status == CART_STATUS_CONVERTED

    def test_expired_cart_is_invisible_before_the_sweep(
        self, session, cart_service, customer, burger, pizza
    ):
        cart_id = cart_service.add_item(
            session, customer.id, None, AddCartItemCommand(product_id=burger.id)
        ).cart.id
        expire(session, cart_id)

        assert cart_service.get_active_cart(session, customer.id) is None

        # adding again starts a fresh cart and retires the stale one
        new_cart = cart_service.add_item(
            session, customer.id, None, AddCartItemCommand(product_id=pizza.id)
        ).cart
        assert new_cart.id != cart_id
        session.expire_all()
        assert session.get(Cart, cart_id).status == CART_STATUS_ABANDONED
