# coursemax/logic/dispatch.py
"""
Automatic dispatch of a store's ready orders.

1. Group the store's recent confirmed orders into one batch.
2. Find active drivers near the delivery address, nearest first.
3. Offer the batch to all of them through the AssignmentCoordinator.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..config import DRIVER_SEARCH_RADIUS_KM, ORDER_GROUPING_STATUS, ORDER_GROUPING_WINDOW_MINUTES
from ..errors import ValidationFailure
from ..utils.money import D
from .pricing import haversine_distance

logger = logging.getLogger(__name__)


@dataclass
class OrderGroup:
    store_id: str
    orders: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def order_ids(self) -> Tuple[str, ...]:
        return tuple(str(o["id"]) for o in self.orders)

    @property
    def total_orders(self) -> int:
        return len(self.orders)

    @property
    def total_value(self) -> Decimal:
        return sum((D(o.get("total_amount") or 0) for o in self.orders), Decimal("0"))

    def to_dict(self):
        return {
            "store_id": self.store_id,
            "orders": self.orders,
            "total_orders": self.total_orders,
            "total_value": self.total_value,
        }


@dataclass(frozen=True)
class NearbyDriver:
    user_id: str
    distance_km: float
    first_name: str = ""
    last_name: str = ""
    phone: str = ""


def group_orders(store_id, orders: List[Mapping]) -> Optional[OrderGroup]:
    if not orders:
        return None
    return OrderGroup(store_id=str(store_id), orders=[dict(o) for o in orders])


def select_eligible_drivers(drivers, lat: float, lon: float, radius_km: float = DRIVER_SEARCH_RADIUS_KM):
    """Drivers within ``radius_km`` of (lat, lon), nearest first. Drivers without a position are skipped."""
    nearby = []
    for driver in drivers:
        if driver.get("latitude") is None or driver.get("longitude") is None:
            continue
        distance = haversine_distance(float(driver["latitude"]), float(driver["longitude"]), lat, lon)
        if distance <= radius_km:
            nearby.append(
                NearbyDriver(
                    user_id=str(driver["user_id"]),
                    distance_km=round(distance, 2),
                    first_name=driver.get("first_name") or "",
                    last_name=driver.get("last_name") or "",
                    phone=driver.get("phone") or "",
                )
            )
    return sorted(nearby, key=lambda d: d.distance_km)


def auto_assign_driver(repository, distance_provider, coordinator, *, store_id, delivery_address, delivery_city,
                       delivery_postal_code=None, now=None) -> Dict[str, Any]:
    if not store_id:
        raise ValidationFailure("store_id is required")
    if not delivery_address or not delivery_city:
        raise ValidationFailure("delivery_address and delivery_city are required")

    now = now or coordinator.clock()
    since = now - timedelta(minutes=ORDER_GROUPING_WINDOW_MINUTES)
    group = group_orders(store_id, repository.list_recent_orders(store_id, ORDER_GROUPING_STATUS, since))
    if group is None:
        raise ValidationFailure("No confirmed orders to dispatch for this store")
    logger.info(f"Found {group.total_orders} order(s) to group for store {store_id}")

    full_address = f"{delivery_address}, {delivery_city}"
    if delivery_postal_code:
        full_address += f", {delivery_postal_code}"
    destination = distance_provider.geocode(full_address)

    drivers = select_eligible_drivers(repository.list_active_drivers(), destination.lat, destination.lon)
    if not drivers:
        logger.info(f"No available driver near '{full_address}'")
        return {
            "success": False,
            "message": "Aucun livreur disponible trouvé",
            "order_group": group.to_dict(),
        }

    assignment = coordinator.create_assignment(
        store_id=store_id,
        order_ids=group.order_ids,
        eligible_driver_ids=[d.user_id for d in drivers],
        total_value=group.total_value,
        notify=False,
    )
    report = coordinator.notify_drivers(assignment)

    return {
        "success": True,
        "message": "Notifications envoyées aux livreurs",
        "order_group": group.to_dict(),
        "available_drivers": len(drivers),
        "assignment_id": assignment.id,
        "expires_at": assignment.expires_at,
        **report.to_dict(),
    }
