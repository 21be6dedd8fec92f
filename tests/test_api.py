import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.routers import orders as orders_router
from tests.conftest import FakePaymentGateway, auth_headers

ORDER_PAYLOAD = {
    "delivery_address": {
        "address": "Invalidenstrasse 1",
        "lat": 52.53,
        "lng": 13.405,
        "postal_code": "10115",
    },
    "customer_contact": {"name": "Ada", "phone": "+49 30 1234567", "email": "ada@example.com"},
    "payment_method": "cash",
}


@pytest.fixture()
def client(session):
    return TestClient(app)


@pytest.fixture()
def gateway(monkeypatch):
    fake = FakePaymentGateway()
    monkeypatch.setattr(orders_router.order_service, "payment_gateway", fake)
    monkeypatch.setattr(orders_router.view, "payment_gateway", fake)
    return fake


@pytest.fixture()
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture()
def partner_headers(partner):
    return auth_headers(partner)


@pytest.fixture()
def courier_headers(courier):
    return auth_headers(courier)


@pytest.fixture()
def admin_headers(admin):
    return auth_headers(admin)


def add_to_cart(client, headers, product, quantity=1, **extra):
    payload = {"product_id": str(product.id), "quantity": quantity, **extra}
    return client.post("/api/v1/cart/items", json=payload, headers=headers)


def place_order(client, headers, payment_method="cash"):
    payload = {**ORDER_PAYLOAD, "payment_method": payment_method}
    return client.post("/api/v1/orders", json=payload, headers=headers)


class TestHealthAndAuth:
    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_cart_requires_token(self, client):
        assert client.get("/api/v1/cart").status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/api/v1/cart", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_wrong_role(self, client, partner_headers):
        assert client.get("/api/v1/cart", headers=partner_headers).status_code == 403

    def test_unknown_user_is_provisioned_as_customer(self, client):
        from app.models.user import User

        stranger = User(id=uuid.uuid4(), email="new@example.com", name="new", role="customer")
        response = client.get("/api/v1/cart", headers=auth_headers(stranger))

        assert response.status_code == 200
        assert response.json()["cart"] is None


class TestCartApi:
    def test_add_and_get(self, client, customer_headers, burger, pizza):
        assert add_to_cart(client, customer_headers, burger).status_code == 201
        response = add_to_cart(client, customer_headers, pizza)
        assert response.status_code == 201

        body = client.get("/api/v1/cart", headers=customer_headers).json()
        assert body["total_items"] == 2
        assert Decimal(body["total_price"]) == Decimal("29.00")
        assert body["meets_minimum_order"] is True

    def test_mismatch_is_conflict(self, client, customer_headers, burger, pasta):
        add_to_cart(client, customer_headers, burger)

        response = add_to_cart(client, customer_headers, pasta)

        assert response.status_code == 409
        assert response.json()["code"] == "restaurant_mismatch"

    def test_unknown_field_is_rejected(self, client, customer_headers, burger):
        item_id = add_to_cart(client, customer_headers, burger).json()["added_item"]["id"]

        response = client.patch(
            f"/api/v1/cart/items/{item_id}",
            json={"quantity": 2, "product_price": "0.01"},
            headers=customer_headers,
        )
        assert response.status_code == 422

    def test_update_remove_clear(self, client, customer_headers, burger, pizza):
        item_id = add_to_cart(client, customer_headers, burger).json()["added_item"]["id"]
        add_to_cart(client, customer_headers, pizza)

        updated = client.patch(
            f"/api/v1/cart/items/{item_id}", json={"quantity": 2}, headers=customer_headers
        )
        assert updated.status_code == 200
        assert Decimal(updated.json()["cart"]["pricing"]["subtotal"]) == Decimal("35.00")

        removed = client.delete(f"/api/v1/cart/items/{item_id}", headers=customer_headers)
        assert removed.status_code == 200
        assert removed.json()["cart"]["total_items"] == 1

        cleared = client.delete("/api/v1/cart", headers=customer_headers)
        assert cleared.json()["cleared_items_count"] == 1
        assert client.get("/api/v1/cart", headers=customer_headers).json()["cart"] is None

    def test_delivery_quote(self, client, customer_headers, burger, zone):
        add_to_cart(client, customer_headers, burger)

        ok = client.post(
            "/api/v1/cart/delivery-quote",
            json={"address": "Invalidenstrasse 1", "lat": 52.53, "lng": 13.405, "postal_code": "10115"},
            headers=customer_headers,
        )
        assert ok.status_code == 200
        assert ok.json()["delivery"]["zone_number"] == 1

        far = client.post(
            "/api/v1/cart/delivery-quote",
            json={"address": "Marienplatz 1", "lat": 48.137, "lng": 11.575, "postal_code": "80331"},
            headers=customer_headers,
        )
        assert far.status_code == 422
        assert far.json()["code"] == "out_of_range"

    def test_session_scoped_cart(self, client, customer_headers, burger):
        scoped = {**customer_headers, "X-Session-ID": "tab-1"}
        add_to_cart(client, scoped, burger)

        assert client.get("/api/v1/cart", headers=scoped).json()["cart"] is not None
        other_tab = {**customer_headers, "X-Session-ID": "tab-2"}
        assert client.get("/api/v1/cart", headers=other_tab).json()["cart"] is None

    def test_second_session_picks_up_cart_for_same_restaurant(
        self, client, customer_headers, burger, pizza
    ):
        first = add_to_cart(client, {**customer_headers, "X-Session-ID": "tab-1"}, burger)
        other_tab = {**customer_headers, "X-Session-ID": "tab-2"}

        response = add_to_cart(client, other_tab, pizza)

        assert response.status_code == first.status_code
        assert response.json()["cart"]["id"] == first.json()["cart"]["id"]
        assert Decimal(response.json()["cart"]["pricing"]["total_price"]) == Decimal("29.00")


class TestOrderApi:
    def test_create_list_get_track(self, client, customer_headers, gateway, burger, pizza):
        add_to_cart(client, customer_headers, burger)
        add_to_cart(client, customer_headers, pizza)

        created = place_order(client, customer_headers)

        assert created.status_code == 201
        body = created.json()
        assert body["warnings"] is None
        order = body["order"]
        assert Decimal(order["total_price"]) == Decimal("29.00")
        assert order["order_number"].startswith("ORD-")
        assert order["contact_phone"] == "+49301234567"

        listed = client.get("/api/v1/orders", headers=customer_headers).json()
        assert [o["id"] for o in listed] == [order["id"]]
        assert client.get("/api/v1/orders?status=delivered", headers=customer_headers).json() == []

        detail = client.get(f"/api/v1/orders/{order['id']}", headers=customer_headers)
        assert detail.status_code == 200
        assert len(detail.json()["items"]) == 2

        tracking = client.get(f"/api/v1/orders/{order['id']}/tracking", headers=customer_headers)
        assert tracking.json()["progress"] == 10

        # the cart is gone after checkout
        assert client.get("/api/v1/cart", headers=customer_headers).json()["cart"] is None

    def test_without_cart(self, client, customer_headers, gateway):
        response = place_order(client, customer_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_invalid_phone(self, client, customer_headers, gateway, burger):
        add_to_cart(client, customer_headers, burger)
        payload = {**ORDER_PAYLOAD, "customer_contact": {"name": "Ada", "phone": "call me"}}
        response = client.post("/api/v1/orders", json=payload, headers=customer_headers)
        assert response.status_code == 422

    def test_gateway_down_is_retryable(self, client, customer_headers, gateway, burger):
        gateway.outcome = "timeout"
        add_to_cart(client, customer_headers, burger)

        response = place_order(client, customer_headers, "card")

        assert response.status_code == 503
        assert response.json()["code"] == "payment_unavailable"
        assert response.json()["retryable"] is True
        assert client.get("/api/v1/cart", headers=customer_headers).json()["cart"] is not None

    def test_declined_card_then_retry(self, client, customer_headers, gateway, burger):
        gateway.outcome = "decline"
        add_to_cart(client, customer_headers, burger)

        created = place_order(client, customer_headers, "card").json()
        assert created["order"]["payment_status"] == "failed"
        assert created["warnings"]["payment_failure"] == "card_declined"

        gateway.outcome = "success"
        order_id = created["order"]["id"]
        retried = client.post(f"/api/v1/orders/{order_id}/retry-payment", headers=customer_headers)
        assert retried.status_code == 200
        assert retried.json()["payment_status"] == "completed"

    def test_other_customer_gets_404(
        self, client, customer_headers, other_customer, gateway, burger
    ):
        add_to_cart(client, customer_headers, burger)
        order_id = place_order(client, customer_headers).json()["order"]["id"]

        response = client.get(f"/api/v1/orders/{order_id}", headers=auth_headers(other_customer))
        assert response.status_code == 404

    def test_cancel(self, client, customer_headers, gateway, burger):
        add_to_cart(client, customer_headers, burger)
        order_id = place_order(client, customer_headers).json()["order"]["id"]

        response = client.post(
            f"/api/v1/orders/{order_id}/cancel", json={"reason": "oops"}, headers=customer_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        again = client.post(f"/api/v1/orders/{order_id}/cancel", json={}, headers=customer_headers)
        assert again.status_code == 409
        assert again.json()["code"] == "order_closed"


class TestFulfilmentApi:
    def test_partner_to_courier_to_rating(
        self,
        client,
        customer_headers,
        partner_headers,
        courier_headers,
        second_courier,
        gateway,
        burger,
    ):
        add_to_cart(client, customer_headers, burger)
        order_id = place_order(client, customer_headers).json()["order"]["id"]

        assert [o["id"] for o in client.get("/api/v1/partner/orders", headers=partner_headers).json()] == [order_id]

        # courier cannot skip the kitchen
        early = client.post(f"/api/v1/courier/orders/{order_id}/claim", headers=courier_headers)
        assert early.status_code == 409
        assert early.json()["code"] == "invalid_transition"

        for step in ("accept", "preparing", "ready"):
            response = client.post(f"/api/v1/partner/orders/{order_id}/{step}", headers=partner_headers)
            assert response.status_code == 200, step
        assert response.json()["status"] == "ready_for_pickup"

        pool = client.get(
            "/api/v1/courier/orders/available?lat=52.52&lng=13.41&radius_km=3",
            headers=courier_headers,
        ).json()
        assert [o["id"] for o in pool] == [order_id]

        claimed = client.post(f"/api/v1/courier/orders/{order_id}/claim", headers=courier_headers)
        assert claimed.status_code == 200
        assert claimed.json()["status"] == "out_for_delivery"

        lost = client.post(
            f"/api/v1/courier/orders/{order_id}/claim", headers=auth_headers(second_courier)
        )
        assert lost.status_code == 409
        assert lost.json()["code"] == "already_claimed"

        delivered = client.post(
            f"/api/v1/courier/orders/{order_id}/delivered", headers=courier_headers
        )
        assert delivered.json()["status"] == "delivered"
        assert delivered.json()["payment_status"] == "completed"

        rated = client.post(
            f"/api/v1/orders/{order_id}/rating",
            json={"partner_rating": 5, "courier_rating": 5},
            headers=customer_headers,
        )
        assert rated.status_code == 200
        assert rated.json()["ratings"]["partner_rating"] == 5

        again = client.post(
            f"/api/v1/orders/{order_id}/rating", json={"partner_rating": 1}, headers=customer_headers
        )
        assert again.status_code == 409

    def test_partner_reject_requires_reason(self, client, customer_headers, partner_headers, gateway, burger):
        add_to_cart(client, customer_headers, burger)
        order_id = place_order(client, customer_headers).json()["order"]["id"]

        missing = client.post(f"/api/v1/partner/orders/{order_id}/reject", json={}, headers=partner_headers)
        assert missing.status_code == 422

        rejected = client.post(
            f"/api/v1/partner/orders/{order_id}/reject",
            json={"reason": "closing early"},
            headers=partner_headers,
        )
        assert rejected.json()["status"] == "cancelled"

    def test_customer_cannot_use_partner_endpoints(self, client, customer_headers, gateway, burger):
        add_to_cart(client, customer_headers, burger)
        order_id = place_order(client, customer_headers).json()["order"]["id"]

        response = client.post(f"/api/v1/partner/orders/{order_id}/accept", headers=customer_headers)
        assert response.status_code == 403


class TestAdminApi:
    def test_zones(self, client, admin_headers, customer_headers, zone):
        assert [z["zone_number"] for z in client.get("/api/v1/zones").json()] == [1]
        assert client.get("/api/v1/zones/check?postal_code=10117").json()["available"] is True

        payload = {
            "zone_number": 2,
            "zone_name": "Kreuzberg",
            "postal_codes": ["10961"],
            "base_fee": "4.00",
            "max_distance_km": 8,
        }
        assert client.post("/api/v1/zones", json=payload, headers=customer_headers).status_code == 403
        assert client.post("/api/v1/zones", json=payload, headers=admin_headers).status_code == 201

        overlap = {**payload, "zone_number": 3, "postal_codes": ["10115"]}
        response = client.post("/api/v1/zones", json=overlap, headers=admin_headers)
        assert response.status_code == 409

    def test_stats(self, client, admin_headers, customer_headers, gateway, burger):
        add_to_cart(client, customer_headers, burger)
        place_order(client, customer_headers)

        response = client.get("/api/v1/admin/stats", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total_orders"] == 1
        assert Decimal(body["total_revenue"]) == Decimal("13.70")

        assert client.get("/api/v1/admin/stats?month=13", headers=admin_headers).status_code == 422
        assert client.get("/api/v1/admin/stats", headers=customer_headers).status_code == 403
