# coursemax/logic/pricing.py
import math

from ..config import (
    DELIVERY_FEE_TIERS,
    LONG_DISTANCE_BONUS,
    LONG_DISTANCE_LABEL_SUFFIX,
    LONG_DISTANCE_THRESHOLD_KM,
)
from ..models import DeliveryQuote

EARTH_RADIUS_KM = 6371


def haversine_distance(lat1, lon1, lat2, lon2):
    """Great-circle distance in km between two coordinates (Haversine formula)."""
    lat1_rad = math.radians(lat1)
    lon1_rad = math.radians(lon1)
    lat2_rad = math.radians(lat2)
    lon2_rad = math.radians(lon2)

    dlon = lon2_rad - lon1_rad
    dlat = lat2_rad - lat1_rad

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def pricing_tier_for(distance_km, tiers=DELIVERY_FEE_TIERS):
    """Return (fee, label) of the first tier whose inclusive upper bound holds distance_km."""
    for upper_bound, fee, label in tiers:
        if upper_bound is None or distance_km <= upper_bound:
            return fee, label
    raise ValueError("fee tiers must end with an unbounded tier")


def calculate_delivery_fee(distance_km: float, duration_minutes: int) -> DeliveryQuote:
    """
    Price a delivery from its driving distance.

    Only the distance is priced; ``duration_minutes`` is carried through to the
    quote for display. The caller guarantees ``distance_km >= 0``.
    """
    delivery_fee, pricing_tier = pricing_tier_for(distance_km)

    if distance_km > LONG_DISTANCE_THRESHOLD_KM:
        delivery_fee += LONG_DISTANCE_BONUS
        pricing_tier += LONG_DISTANCE_LABEL_SUFFIX

    return DeliveryQuote(
        distance_km=round(distance_km, 2),
        delivery_fee=delivery_fee,
        pricing_tier=pricing_tier,
        estimated_duration_minutes=int(duration_minutes),
    )
