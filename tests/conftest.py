import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["CART_REAPER_INTERVAL_SECONDS"] = "0"
os.environ.pop("PAYMENT_GATEWAY_URL", None)

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from jose import jwt
from sqlmodel import Session, SQLModel

from app.core.config import get_settings
from app.database import engine
from app.gateways.inventory import SqlInventoryGateway
from app.gateways.payment import PaymentGatewayUnavailable, PaymentResult
from app.main import app  # noqa: F401  (registers every table)
from app.models.product import Product
from app.models.restaurant import Restaurant
from app.models.user import User
from app.models.zone import DeliveryZone
from app.repositories.cart_repo import CartRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.repositories.rating_repo import RatingRepository
from app.repositories.restaurant_repo import RestaurantRepository
from app.repositories.zone_repo import ZoneRepository
from app.schemas.cart import AddCartItemCommand
from app.schemas.order import CreateOrderCommand
from app.services.cart_service import CartService
from app.services.order_service import OrderService
from app.services.order_state import OrderLifecycle
from app.services.order_views import (
    CourierOrderView,
    CustomerOrderView,
    PartnerOrderView,
)

RESTAURANT_LAT = 52.5200
RESTAURANT_LNG = 13.4050


class FakePaymentGateway:
    """
    outcome: "success" | "decline" | "timeout"
    """

    def __init__(self, outcome: str = "success"):
        self.outcome = outcome
        self.charges: list[tuple] = []
        self.refunds: list[tuple] = []
        self.attempts: list[int] = []

    def charge(self, order_id, amount, method, attempt=1):
        self.charges.append((order_id, amount, method))
        self.attempts.append(attempt)
        if self.outcome == "timeout":
            raise PaymentGatewayUnavailable("timed out")
        if self.outcome == "decline":
            return PaymentResult(success=False, reference=None, reason="card_declined")
        return PaymentResult(success=True, reference=f"ch_{len(self.charges)}")

    def refund(self, reference, amount):
        self.refunds.append((reference, amount))
        return True


@pytest.fixture()
def session():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s


def _user(session: Session, role: str, name: str) -> User:
    user = User(id=uuid.uuid4(), email=f"{name}@example.com", name=name, role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture()
def customer(session):
    return _user(session, "customer", "customer")


@pytest.fixture()
def other_customer(session):
    return _user(session, "customer", "other")


@pytest.fixture()
def partner(session):
    return _user(session, "partner", "partner")


@pytest.fixture()
def courier(session):
    return _user(session, "courier", "courier")


@pytest.fixture()
def second_courier(session):
    return _user(session, "courier", "courier2")


@pytest.fixture()
def admin(session):
    return _user(session, "admin", "admin")


@pytest.fixture()
def restaurant(session, partner):
    r = Restaurant(
        owner_id=partner.id,
        name="Burger Barn",
        category="restaurant",
        lat=RESTAURANT_LAT,
        lng=RESTAURANT_LNG,
        base_delivery_fee=Decimal("3.50"),
        min_order_amount=Decimal("10.00"),
    )
    session.add(r)
    session.commit()
    session.refresh(r)
    return r


@pytest.fixture()
def other_restaurant(session, partner):
    r = Restaurant(
        owner_id=partner.id,
        name="Pasta Place",
        category="restaurant",
        lat=RESTAURANT_LAT,
        lng=RESTAURANT_LNG,
        base_delivery_fee=Decimal("2.00"),
        min_order_amount=Decimal("0.00"),
    )
    session.add(r)
    session.commit()
    session.refresh(r)
    return r


@pytest.fixture()
def store(session, partner):
    r = Restaurant(
        owner_id=partner.id,
        name="Corner Store",
        category="store",
        lat=RESTAURANT_LAT,
        lng=RESTAURANT_LNG,
        base_delivery_fee=Decimal("2.00"),
        min_order_amount=Decimal("0.00"),
    )
    session.add(r)
    session.commit()
    session.refresh(r)
    return r


def _product(session, restaurant, title, price, **kwargs) -> Product:
    p = Product(
        restaurant_id=restaurant.id,
        title=title,
        price=Decimal(price),
        category=restaurant.category,
        **kwargs,
    )
    session.add(p)
    session.commit()
    session.refresh(p)
    return p


@pytest.fixture()
def burger(session, restaurant):
    return _product(
        session,
        restaurant,
        "Burger",
        "10.00",
        option_groups=[
            {
                "name": "Extras",
                "options": [
                    {"name": "Cheese", "price": "1.50", "is_available": True},
                    {"name": "Bacon", "price": "2.00", "is_available": False},
                ],
            }
        ],
    )


@pytest.fixture()
def pizza(session, restaurant):
    return _product(session, restaurant, "Pizza", "15.00")


@pytest.fixture()
def pasta(session, other_restaurant):
    return _product(session, other_restaurant, "Pasta", "12.00")


@pytest.fixture()
def water(session, store):
    return _product(session, store, "Water 6-pack", "2.00", stock_quantity=5)


@pytest.fixture()
def zone(session):
    z = DeliveryZone(
        zone_number=1,
        zone_name="Mitte",
        postal_codes=["10115", "10117"],
        base_fee=Decimal("3.50"),
        additional_restaurant_fee=Decimal("1.00"),
        max_distance_km=10.0,
        estimated_delivery_minutes=30,
        center_lat=RESTAURANT_LAT,
        center_lng=RESTAURANT_LNG,
    )
    session.add(z)
    session.commit()
    session.refresh(z)
    return z


@pytest.fixture()
def settings():
    return get_settings()


@pytest.fixture()
def payment_gateway():
    return FakePaymentGateway()


@pytest.fixture()
def cart_service(settings):
    return CartService(
        CartRepository(),
        ProductRepository(),
        RestaurantRepository(),
        ZoneRepository(),
        settings,
    )


@pytest.fixture()
def inventory():
    return SqlInventoryGateway(ProductRepository())


@pytest.fixture()
def order_service(cart_service, inventory, payment_gateway, settings):
    return OrderService(
        OrderRepository(),
        CartRepository(),
        RestaurantRepository(),
        cart_service,
        inventory,
        payment_gateway,
        settings,
    )


@pytest.fixture()
def lifecycle(inventory):
    return OrderLifecycle(OrderRepository(), RatingRepository(), inventory)


@pytest.fixture()
def customer_view(lifecycle, payment_gateway):
    return CustomerOrderView(OrderRepository(), lifecycle, payment_gateway)


@pytest.fixture()
def partner_view(lifecycle):
    return PartnerOrderView(OrderRepository(), lifecycle, RestaurantRepository())


@pytest.fixture()
def courier_view(lifecycle):
    return CourierOrderView(OrderRepository(), lifecycle, RestaurantRepository())


def order_command(payment_method: str = "cash") -> CreateOrderCommand:
    return CreateOrderCommand(
        delivery_address={
            "address": "Invalidenstrasse 1",
            "lat": 52.5300,
            "lng": 13.4050,
            "postal_code": "10115",
        },
        customer_contact={"name": "Ada", "phone": "+49 30 1234567"},
        payment_method=payment_method,
    )


@pytest.fixture()
def filled_cart(session, cart_service, customer, burger, pizza):
    """Burger 10.00 + Pizza 15.00, no delivery quote."""
    cart_service.add_item(session, customer.id, None, AddCartItemCommand(product_id=burger.id))
    cart_service.add_item(session, customer.id, None, AddCartItemCommand(product_id=pizza.id))
    return cart_service.get_active_cart(session, customer.id)


@pytest.fixture()
def placed_order(session, order_service, customer, filled_cart):
    return order_service.create_order_from_cart(session, customer.id, None, order_command()).order


def make_token(user: User) -> str:
    return jwt.encode(
        {
            "sub": str(user.id),
            "email": user.email,
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        },
        "test-secret",
        algorithm="HS256",
    )


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user)}"}
