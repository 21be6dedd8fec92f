# app/services/geo_pricing.py
"""
Delivery distance, zone lookup and fee formula.

Pure functions over already-resolved coordinates and zone rows; no I/O.
Callers load the zones (ZoneRepository.list_active) and pass them in.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from app.core.config import Settings, get_settings
from app.core.money import to_money
from app.models.zone import DeliveryZone

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True, slots=True)
class DeliveryQuote:
    zone_number: int
    zone_name: str
    distance_km: float
    fee: Decimal
    eta_minutes: int


@dataclass(frozen=True, slots=True)
class OutOfRange:
    """
    "Cannot deliver here" as a value, so callers decide how to present it.

    reason is "no_zone" when nothing covers the destination, or
    "too_far" when the trip exceeds the zone's max distance.
    """

    reason: str
    distance_km: float | None = None
    max_distance_km: float | None = None


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine great-circle distance in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def normalize_postal_code(postal_code: str | None) -> str | None:
    if postal_code is None:
        return None
    code = postal_code.strip().upper()
    return code or None


def resolve_zone(
    zones: Iterable[DeliveryZone],
    postal_code: str | None = None,
    lat: float | None = None,
    lng: float | None = None,
) -> DeliveryZone | None:
    """
    Find the zone serving a destination.

    Rules:
      - inactive zones are ignored
      - an exact postal-code match wins
      - otherwise the nearest zone whose centre is within its own
        max_distance_km of (lat, lng)
      - None when nothing covers the destination
    """
    active = [z for z in zones if z.is_active]

    code = normalize_postal_code(postal_code)
    if code is not None:
        for zone in active:
            if code in zone.postal_codes:
                return zone

    if lat is None or lng is None:
        return None

    best: DeliveryZone | None = None
    best_distance = math.inf
    for zone in active:
        if zone.center_lat is None or zone.center_lng is None:
            continue
        d = distance_km(zone.center_lat, zone.center_lng, lat, lng)
        if d <= zone.max_distance_km and d < best_distance:
            best, best_distance = zone, d
    return best


def quote_delivery_fee(
    trip_km: float,
    zone: DeliveryZone,
    restaurant_count: int = 1,
    settings: Settings | None = None,
) -> DeliveryQuote | OutOfRange:
    """
    fee = base fee
          + per-km surcharge for every started km past the threshold
          + additional-restaurant fee for each restaurant beyond the first
    clamped to [DELIVERY_FEE_MIN, DELIVERY_FEE_MAX], rounded to cents.
    """
    settings = settings or get_settings()

    if trip_km > zone.max_distance_km:
        return OutOfRange(
            reason="too_far",
            distance_km=round(trip_km, 2),
            max_distance_km=zone.max_distance_km,
        )

    fee = Decimal(zone.base_fee)

    threshold = settings.DELIVERY_SURCHARGE_THRESHOLD_KM
    if trip_km > threshold:
        extra_km = math.ceil(trip_km - threshold)
        fee += settings.DELIVERY_PER_KM_SURCHARGE * extra_km

    if restaurant_count > 1:
        fee += Decimal(zone.additional_restaurant_fee) * (restaurant_count - 1)

    fee = min(max(fee, settings.DELIVERY_FEE_MIN), settings.DELIVERY_FEE_MAX)

    eta = zone.estimated_delivery_minutes + round(
        trip_km * settings.DELIVERY_MINUTES_PER_KM
    )

    return DeliveryQuote(
        zone_number=zone.zone_number,
        zone_name=zone.zone_name,
        distance_km=round(trip_km, 2),
        fee=to_money(fee),
        eta_minutes=int(eta),
    )


def quote_for_destination(
    zones: Iterable[DeliveryZone],
    origin_lat: float,
    origin_lng: float,
    dest_lat: float,
    dest_lng: float,
    postal_code: str | None = None,
    restaurant_count: int = 1,
    settings: Settings | None = None,
) -> DeliveryQuote | OutOfRange:
    zone = resolve_zone(zones, postal_code=postal_code, lat=dest_lat, lng=dest_lng)
    if zone is None:
        return OutOfRange(reason="no_zone")

    trip_km = distance_km(origin_lat, origin_lng, dest_lat, dest_lng)
    return quote_delivery_fee(trip_km, zone, restaurant_count, settings)
