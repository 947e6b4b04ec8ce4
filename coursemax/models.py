# coursemax/models.py
"""
Domain records for settlement and dispatch.

- CartLine / ReceiptItem / ReceiptBreakdown: what the customer pays and who gets it
- DeliveryQuote: the priced result of one delivery-fee request
- DriverAssignment: a batch of ready orders offered to a pool of drivers
- AcceptOutcome: the typed answer to "did this driver win the batch?"
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .utils.money import CENT, D, round_money


@dataclass(frozen=True)
class CartLine:
    name: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.quantity * D(self.unit_price)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CartLine":
        # the storefront sends "price", older clients sent "unit_price"
        price = data.get("unit_price", data.get("price"))
        return cls(name=str(data.get("name", "")), quantity=int(data["quantity"]), unit_price=D(price))


@dataclass(frozen=True)
class ReceiptItem:
    name: str
    quantity: int
    price: Decimal
    total: Decimal


@dataclass(frozen=True)
class ReceiptBreakdown:
    items: Tuple[ReceiptItem, ...]
    subtotal: Decimal
    taxes: Decimal
    tax_rate: Decimal
    delivery_fee: Decimal
    tip: Decimal
    total_products: Decimal
    total_fees: Decimal
    grand_total: Decimal
    merchant_amount: Decimal
    driver_amount: Decimal
    admin_commission: Decimal
    commission_policy: str = "legacy"

    @property
    def is_balanced(self) -> bool:
        """True when merchant + driver + platform add up to the grand total (to the cent)."""
        parts = self.merchant_amount + self.driver_amount + self.admin_commission
        return abs(self.grand_total - parts) < CENT

    def to_dict(self, rounded: bool = False) -> Dict[str, Any]:
        money = round_money if rounded else (lambda value: value)
        return {
            "items": [
                {"name": i.name, "quantity": i.quantity, "price": money(i.price), "total": money(i.total)}
                for i in self.items
            ],
            "subtotal": money(self.subtotal),
            "taxes": money(self.taxes),
            "tax_rate": self.tax_rate,
            "delivery_fee": money(self.delivery_fee),
            "tip": money(self.tip),
            "total_products": money(self.total_products),
            "total_fees": money(self.total_fees),
            "grand_total": money(self.grand_total),
            "merchant_amount": money(self.merchant_amount),
            "driver_amount": money(self.driver_amount),
            "admin_commission": money(self.admin_commission),
            "commission_policy": self.commission_policy,
            "is_balanced": self.is_balanced,
        }


@dataclass(frozen=True)
class DeliveryQuote:
    distance_km: float
    delivery_fee: Decimal
    pricing_tier: str
    estimated_duration_minutes: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({AssignmentStatus.COMPLETED, AssignmentStatus.EXPIRED, AssignmentStatus.CANCELLED})

_REQUIRED_ASSIGNMENT_FIELDS = ("id", "store_id", "order_ids", "status", "expires_at")


def _as_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class DriverAssignment:
    id: str
    store_id: str
    order_ids: Tuple[str, ...]
    available_driver_ids: Tuple[str, ...]
    total_value: Decimal
    expires_at: datetime
    status: AssignmentStatus = AssignmentStatus.PENDING
    total_orders: int = 0
    assigned_driver_id: Optional[str] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def copy(self, **changes) -> "DriverAssignment":
        return replace(self, **changes)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DriverAssignment":
        """Build an assignment from a database row, refusing rows with a foreign shape."""
        missing = [name for name in _REQUIRED_ASSIGNMENT_FIELDS if row.get(name) is None]
        if missing:
            raise ValueError(f"driver_assignments row is missing fields: {', '.join(missing)}")
        drivers = row.get("available_driver_ids")
        if drivers is None:
            drivers = row.get("available_drivers") or ()
        order_ids = tuple(str(o) for o in row["order_ids"])
        return cls(
            id=str(row["id"]),
            store_id=str(row["store_id"]),
            order_ids=order_ids,
            available_driver_ids=tuple(str(d) for d in drivers),
            total_orders=int(row.get("total_orders") or len(order_ids)),
            total_value=D(row.get("total_value") or 0),
            status=AssignmentStatus(row["status"]),
            expires_at=_as_datetime(row["expires_at"]),
            assigned_driver_id=str(row["assigned_driver_id"]) if row.get("assigned_driver_id") else None,
            accepted_at=_as_datetime(row.get("accepted_at")),
            completed_at=_as_datetime(row.get("completed_at")),
            cancelled_at=_as_datetime(row.get("cancelled_at")),
            created_at=_as_datetime(row.get("created_at")),
            updated_at=_as_datetime(row.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "order_ids": list(self.order_ids),
            "available_drivers": list(self.available_driver_ids),
            "assigned_driver_id": self.assigned_driver_id,
            "total_orders": self.total_orders,
            "total_value": self.total_value,
            "status": self.status.value,
            "expires_at": self.expires_at,
            "accepted_at": self.accepted_at,
            "completed_at": self.completed_at,
            "cancelled_at": self.cancelled_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class AcceptReason(str, Enum):
    ACCEPTED = "accepted"
    RACE_LOST = "race_lost"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class AcceptOutcome:
    """Result of one acceptance attempt. Falsy whenever the driver did not win."""

    accepted: bool
    reason: AcceptReason
    assignment: Optional[DriverAssignment] = None

    def __bool__(self) -> bool:
        return self.accepted
