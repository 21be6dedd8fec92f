from decimal import Decimal

import pytest

from app.core.config import Settings
from app.models.zone import DeliveryZone
from app.services.geo_pricing import (
    DeliveryQuote,
    OutOfRange,
    distance_km,
    quote_delivery_fee,
    quote_for_destination,
    resolve_zone,
)

BERLIN = (52.5200, 13.4050)
MUNICH = (48.1351, 11.5820)


def make_zone(**overrides) -> DeliveryZone:
    data = dict(
        zone_number=1,
        zone_name="Mitte",
        postal_codes=["10115", "10117"],
        base_fee=Decimal("3.50"),
        additional_restaurant_fee=Decimal("1.00"),
        max_distance_km=10.0,
        estimated_delivery_minutes=30,
        center_lat=BERLIN[0],
        center_lng=BERLIN[1],
    )
    data.update(overrides)
    return DeliveryZone(**data)


def settings(**overrides) -> Settings:
    return Settings(DATABASE_URL="sqlite://", JWT_SECRET="x", **overrides)


class TestDistance:
    def test_same_point_is_zero(self):
        assert distance_km(*BERLIN, *BERLIN) == 0

    def test_one_degree_of_longitude_at_equator(self):
        assert distance_km(0, 0, 0, 1) == pytest.approx(111.195, abs=0.01)

    def test_berlin_to_munich(self):
        assert 500 < distance_km(*BERLIN, *MUNICH) < 510

    def test_symmetric(self):
        assert distance_km(*BERLIN, *MUNICH) == pytest.approx(distance_km(*MUNICH, *BERLIN))


class TestResolveZone:
    def test_postal_code_match_wins(self):
        zone = make_zone()
        far_away = make_zone(zone_number=2, postal_codes=["80331"], center_lat=MUNICH[0], center_lng=MUNICH[1])
        assert resolve_zone([far_away, zone], postal_code=" 10115 ", lat=MUNICH[0], lng=MUNICH[1]) is zone

    def test_falls_back_to_nearest_centre(self):
        near = make_zone(postal_codes=[])
        other = make_zone(zone_number=2, postal_codes=[], center_lat=52.60, center_lng=13.40)
        assert resolve_zone([other, near], postal_code="99999", lat=52.525, lng=13.405) is near

    def test_inactive_zone_ignored(self):
        zone = make_zone(is_active=False)
        assert resolve_zone([zone], postal_code="10115") is None

    def test_nothing_covers_destination(self):
        assert resolve_zone([make_zone()], postal_code="99999", lat=MUNICH[0], lng=MUNICH[1]) is None

    def test_no_postal_code_and_no_coordinates(self):
        assert resolve_zone([make_zone()]) is None


class TestQuoteDeliveryFee:
    def test_within_threshold_is_base_fee(self):
        quote = quote_delivery_fee(1.11, make_zone(), settings=settings())
        assert isinstance(quote, DeliveryQuote)
        assert quote.fee == Decimal("3.50")
        assert quote.eta_minutes == 33
        assert quote.zone_number == 1

    def test_started_km_past_threshold_are_charged(self):
        quote = quote_delivery_fee(7.2, make_zone(), settings=settings())
        # 3 started km x 0.50
        assert quote.fee == Decimal("5.00")
        assert quote.eta_minutes == 30 + 22

    def test_additional_restaurants(self):
        quote = quote_delivery_fee(1.0, make_zone(), restaurant_count=3, settings=settings())
        assert quote.fee == Decimal("5.50")

    def test_fee_is_clamped(self):
        quote = quote_delivery_fee(
            9.5,
            make_zone(),
            restaurant_count=5,
            settings=settings(DELIVERY_FEE_MAX=Decimal("6.00")),
        )
        assert quote.fee == Decimal("6.00")

    def test_too_far(self):
        result = quote_delivery_fee(12.3456, make_zone(), settings=settings())
        assert result == OutOfRange(reason="too_far", distance_km=12.35, max_distance_km=10.0)


class TestQuoteForDestination:
    def test_in_zone(self):
        quote = quote_for_destination(
            [make_zone()], *BERLIN, 52.5300, 13.4050, postal_code="10115", settings=settings()
        )
        assert isinstance(quote, DeliveryQuote)
        assert quote.distance_km == pytest.approx(1.11, abs=0.01)

    def test_no_zone(self):
        result = quote_for_destination(
            [make_zone()], *BERLIN, *MUNICH, postal_code="80331", settings=settings()
        )
        assert result == OutOfRange(reason="no_zone")

    def test_postal_match_but_trip_too_long(self):
        result = quote_for_destination(
            [make_zone()], *BERLIN, 52.70, 13.4050, postal_code="10115", settings=settings()
        )
        assert isinstance(result, OutOfRange)
        assert result.reason == "too_far"
        assert result.distance_km > 10
