# coursemax/logic/fee_distribution.py
"""
Sharing one delivery fee between the merchants of a multi-merchant order.

Methods:
- proportional: by each merchant's subtotal
- equal: same share for everyone
- distance_based: by the distance each merchant adds (equal when no distance is known)
- hybrid: weighted mix of value, distance and priority

Each share is rounded to the cent and clamped to [minimum_fee, maximum_fee];
whatever is left over after rounding goes to the last merchant.
"""

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from ..config import (
    FEE_DISTRIBUTION_BASE_WEIGHT,
    FEE_DISTRIBUTION_DISTANCE_WEIGHT,
    FEE_DISTRIBUTION_MAXIMUM_FEE,
    FEE_DISTRIBUTION_METHOD,
    FEE_DISTRIBUTION_MINIMUM_FEE,
    FEE_DISTRIBUTION_PRIORITY_WEIGHT,
    SEPARATE_ORDER_BASE_FEE,
)
from ..errors import ValidationFailure
from ..utils.money import CENT, D, round_money

logger = logging.getLogger(__name__)

METHODS = ("proportional", "equal", "distance_based", "hybrid")
DEFAULT_PRIORITY = 2  # 1 = high, 2 = normal, 3 = low


@dataclass(frozen=True)
class MerchantOrder:
    merchant_id: str
    merchant_name: str
    subtotal: Decimal
    address: str = ""
    distance: Optional[float] = None
    priority: int = DEFAULT_PRIORITY

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MerchantOrder":
        try:
            return cls(
                merchant_id=str(data["merchant_id"]),
                merchant_name=str(data.get("merchant_name", "")),
                subtotal=D(data["subtotal"]),
                address=str(data.get("address", "")),
                distance=float(data["distance"]) if data.get("distance") is not None else None,
                priority=int(data.get("priority") or DEFAULT_PRIORITY),
            )
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise ValidationFailure("Each merchant order needs merchant_id and a numeric subtotal") from e


@dataclass(frozen=True)
class DistributionConfig:
    method: str = FEE_DISTRIBUTION_METHOD
    base_fee_weight: Decimal = FEE_DISTRIBUTION_BASE_WEIGHT
    distance_weight: Decimal = FEE_DISTRIBUTION_DISTANCE_WEIGHT
    priority_weight: Decimal = FEE_DISTRIBUTION_PRIORITY_WEIGHT
    minimum_fee: Decimal = FEE_DISTRIBUTION_MINIMUM_FEE
    maximum_fee: Decimal = FEE_DISTRIBUTION_MAXIMUM_FEE
    round_to_nearest: Decimal = CENT


@dataclass
class MerchantFee:
    merchant_id: str
    merchant_name: str
    order_value: Decimal
    distance: Optional[float]
    percentage: Decimal
    base_fee: Decimal = Decimal("0")
    distance_fee: Decimal = Decimal("0")
    priority_fee: Decimal = Decimal("0")
    total_fee: Decimal = Decimal("0")
    breakdown: Dict[str, Decimal] = field(default_factory=dict)

    def to_dict(self):
        return {
            "merchant_id": self.merchant_id,
            "merchant_name": self.merchant_name,
            "order_value": self.order_value,
            "distance": self.distance,
            "base_fee": self.base_fee,
            "distance_fee": self.distance_fee,
            "priority_fee": self.priority_fee,
            "total_fee": self.total_fee,
            "percentage": self.percentage,
            "breakdown": self.breakdown,
        }


def _fee(order, share, total_fee, step, *, base=None, distance=None, priority=None):
    raw = total_fee * share
    parts = {
        "base": raw if base is None else base,
        "distance": distance or Decimal("0"),
        "priority": priority or Decimal("0"),
    }
    return MerchantFee(
        merchant_id=order.merchant_id,
        merchant_name=order.merchant_name,
        order_value=order.subtotal,
        distance=order.distance,
        percentage=share * 100,
        base_fee=round_money(parts["base"], step),
        distance_fee=round_money(parts["distance"], step),
        priority_fee=round_money(parts["priority"], step),
        total_fee=round_money(raw, step),
        breakdown={**parts, "total": raw},
    )


def _equal(orders, total_fee, config):
    share = Decimal(1) / len(orders)
    return [_fee(o, share, total_fee, config.round_to_nearest) for o in orders]


def _proportional(orders, total_fee, config):
    total_value = sum((o.subtotal for o in orders), Decimal("0"))
    if total_value == 0:
        return _equal(orders, total_fee, config)
    return [_fee(o, o.subtotal / total_value, total_fee, config.round_to_nearest) for o in orders]


def _distance_based(orders, total_fee, config):
    total_distance = sum(D(o.distance or 0) for o in orders)
    if total_distance == 0:
        return _equal(orders, total_fee, config)
    fees = []
    for o in orders:
        share = D(o.distance or 0) / total_distance
        fees.append(_fee(o, share, total_fee, config.round_to_nearest, base=Decimal("0"), distance=total_fee * share))
    return fees


def _hybrid(orders, total_fee, config):
    total_value = sum((o.subtotal for o in orders), Decimal("0"))
    total_distance = sum(D(o.distance or 0) for o in orders)
    total_priority = sum(D(o.priority) for o in orders)

    fees = []
    for o in orders:
        value_part = (o.subtotal / total_value) * config.base_fee_weight if total_value else Decimal("0")
        distance_part = (D(o.distance or 0) / total_distance) * config.distance_weight if total_distance else Decimal("0")
        priority_part = (D(o.priority) / total_priority) * config.priority_weight
        share = value_part + distance_part + priority_part
        raw = total_fee * share
        fees.append(_fee(
            o, share, total_fee, config.round_to_nearest,
            base=raw * config.base_fee_weight,
            distance=raw * config.distance_weight,
            priority=raw * config.priority_weight,
        ))
    return fees


_STRATEGIES = {
    "proportional": _proportional,
    "equal": _equal,
    "distance_based": _distance_based,
    "hybrid": _hybrid,
}


def _clamp(fees, config):
    for fee in fees:
        clamped = min(max(fee.total_fee, config.minimum_fee), config.maximum_fee)
        if clamped != fee.total_fee:
            fee.total_fee = clamped
            fee.breakdown["total"] = clamped


def _std(values):
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def _efficiency(fees, total_fee) -> int:
    distributed = sum(f.total_fee for f in fees)
    if total_fee > 0:
        accuracy = max(0.0, 100 - float(abs(total_fee - distributed) / total_fee * 100))
    else:
        accuracy = 100.0
    fairness = max(0.0, 100 - _std([float(f.total_fee) for f in fees]) * 10)
    return int(round((accuracy + fairness) / 2))


def distribute_delivery_fee(merchant_orders, total_fee, method: Optional[str] = None,
                            config: Optional[DistributionConfig] = None) -> Dict[str, Any]:
    config = config or DistributionConfig()
    method = method or config.method
    if method not in _STRATEGIES:
        raise ValidationFailure(f"Unsupported distribution method: {method}")

    orders = [o if isinstance(o, MerchantOrder) else MerchantOrder.from_mapping(o) for o in merchant_orders or ()]
    if not orders:
        raise ValidationFailure("At least one merchant order is required")
    total_fee = D(total_fee)
    if total_fee < 0:
        raise ValidationFailure("total_fee must not be negative")

    fees = _STRATEGIES[method](orders, total_fee, config)
    _clamp(fees, config)

    difference = total_fee - sum(f.total_fee for f in fees)
    if abs(difference) > config.round_to_nearest:
        fees[-1].total_fee += difference
        fees[-1].breakdown["total"] = fees[-1].breakdown["total"] + difference
        logger.info(f"Fee distribution: {difference} moved to merchant {fees[-1].merchant_id}")

    total_order_value = sum((o.subtotal for o in orders), Decimal("0"))
    separate_fees = SEPARATE_ORDER_BASE_FEE * len(orders)

    return {
        "total_fee": total_fee,
        "distribution_method": method,
        "merchant_fees": [f.to_dict() for f in fees],
        "summary": {
            "total_order_value": total_order_value,
            "average_fee_per_merchant": round_money(total_fee / len(orders)),
            "fee_efficiency": _efficiency(fees, total_fee),
            "savings": round_money(max(Decimal("0"), separate_fees - total_fee)),
        },
    }
