# delivery/services.py
"""
Delivery fee lookup: distance from the store, blackout areas, then the
distance band that covers the customer.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from math import atan2, cos, radians, sin, sqrt

from common.errors import AppError, ErrorKind, ValidationError
from .models import DeliveryBlackout, DeliveryZone, StoreSettings

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3959


class StoreNotConfiguredError(AppError):
    kind = ErrorKind.INTERNAL
    default_detail = "Store location not configured"


class NoDeliveryZonesError(AppError):
    kind = ErrorKind.INTERNAL
    default_detail = "No delivery zones configured"


class LocationRequiredError(ValidationError):
    default_detail = "Unable to determine delivery location"


@dataclass(frozen=True)
class DeliveryQuote:
    can_deliver: bool
    distance: float
    delivery_fee: Decimal
    estimated_time: int
    zone_name: str | None
    message: str

    def as_dict(self) -> dict:
        return {
            "canDeliver": self.can_deliver,
            "distance": self.distance,
            "deliveryFee": float(self.delivery_fee),
            "estimatedTime": self.estimated_time,
            "zoneName": self.zone_name,
            "message": self.message,
        }


def haversine_miles(lat1, lng1, lat2, lng2) -> float:
    """Great-circle distance in miles, rounded to 2 decimals."""
    lat1, lng1, lat2, lng2 = (float(v) for v in (lat1, lng1, lat2, lng2))
    d_lat = radians(lat2 - lat1)
    d_lng = radians(lng2 - lng1)
    a = sin(d_lat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(d_lng / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return round(EARTH_RADIUS_MILES * c, 2)


def _normalize_zip(value) -> str:
    return str(value or "").strip()[:5]


def blackout_for_zip(zip_code) -> DeliveryBlackout | None:
    wanted = _normalize_zip(zip_code)
    if not wanted:
        return None
    for blackout in DeliveryBlackout.objects.filter(is_active=True).order_by("id"):
        if wanted in {_normalize_zip(z) for z in blackout.zip_codes or []}:
            return blackout
    return None


def zone_for_distance(distance: float) -> DeliveryZone:
    zones = DeliveryZone.objects.filter(is_active=True)
    if not zones.exists():
        raise NoDeliveryZonesError()

    miles = Decimal(str(distance))
    zone = (
        zones.filter(min_distance_miles__lte=miles, max_distance_miles__gt=miles)
        .order_by("min_distance_miles", "sort_order", "id")
        .first()
    )
    if zone is None:
        # outside every band but within range: widest zone applies
        zone = zones.order_by("-max_distance_miles", "id").first()
    return zone


def quote_delivery(latitude, longitude, zip_code=None) -> DeliveryQuote:
    if latitude is None or longitude is None:
        raise LocationRequiredError()

    store = StoreSettings.current()
    if store is None or store.latitude is None or store.longitude is None:
        raise StoreNotConfiguredError()

    distance = haversine_miles(store.latitude, store.longitude, latitude, longitude)
    max_distance = float(store.max_delivery_distance_miles)
    if distance > max_distance:
        return DeliveryQuote(
            can_deliver=False,
            distance=distance,
            delivery_fee=Decimal("0"),
            estimated_time=0,
            zone_name=None,
            message=f"Sorry, we only deliver within {max_distance:g} miles. "
                    f"Your location is {distance} miles away.",
        )

    blackout = blackout_for_zip(zip_code)
    if blackout is not None:
        message = f"Sorry, we don't currently deliver to {blackout.area_name}"
        if blackout.reason:
            message += f" ({blackout.reason})"
        return DeliveryQuote(
            can_deliver=False,
            distance=distance,
            delivery_fee=Decimal("0"),
            estimated_time=0,
            zone_name=None,
            message=message,
        )

    zone = zone_for_distance(distance)
    logger.debug("Delivery quote: %s miles -> %s", distance, zone.zone_name)
    return DeliveryQuote(
        can_deliver=True,
        distance=distance,
        delivery_fee=zone.delivery_fee,
        estimated_time=zone.estimated_time_minutes,
        zone_name=zone.zone_name,
        message=f"Delivery available to {zone.zone_name}",
    )
