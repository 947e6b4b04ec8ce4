# coursemax/logic/receipt.py
"""
Detailed receipt for a CourseMax order.

Computes prices, taxes, delivery fee and tip, and how the grand total is split:
- merchant receives the products plus their taxes
- driver receives the delivery fee plus the tip
- the platform keeps ``admin_commission``

How the commission is funded is a business decision that is still open, so it
is selected with a ``CommissionPolicy`` (see DESIGN.md). ``LEGACY`` reproduces
what the storefront has always computed: the commission is a share of the
grand total that is *not* deducted from anyone, so for a rate above zero the
three amounts do not add up to what the customer paid.
"""

import logging
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional, Union

from ..config import DEFAULT_TAX_RATE, QUEBEC_LOCATION_MARKERS, QUEBEC_TAX_RATE
from ..models import CartLine, ReceiptBreakdown, ReceiptItem
from ..utils.money import D

logger = logging.getLogger(__name__)

CartInput = Union[CartLine, Mapping]


class CommissionPolicy(str, Enum):
    LEGACY = "legacy"
    FROM_MERCHANT = "from_merchant"
    FROM_DRIVER = "from_driver"
    ON_TOP = "on_top"


def get_tax_rate(location: Optional[str] = None) -> Decimal:
    """Combined sales-tax rate for a delivery location. Only Quebec is modelled."""
    if location:
        lowered = location.lower()
        if any(marker in lowered for marker in QUEBEC_LOCATION_MARKERS):
            return QUEBEC_TAX_RATE
    return DEFAULT_TAX_RATE


def calculate_receipt(
    items: Iterable[CartInput],
    delivery_fee,
    tip,
    tax_rate=None,
    admin_commission_rate=0,
    location: Optional[str] = None,
    commission_policy: Union[CommissionPolicy, str] = CommissionPolicy.LEGACY,
) -> ReceiptBreakdown:
    policy = CommissionPolicy(commission_policy)
    final_tax_rate = D(tax_rate) if tax_rate is not None else get_tax_rate(location)
    commission_rate = D(admin_commission_rate)
    delivery_fee = D(delivery_fee)
    tip = D(tip)

    lines = [line if isinstance(line, CartLine) else CartLine.from_mapping(line) for line in items]
    receipt_items = tuple(
        ReceiptItem(name=line.name, quantity=line.quantity, price=D(line.unit_price), total=line.line_total)
        for line in lines
    )

    subtotal = sum((item.total for item in receipt_items), Decimal("0"))

    # taxes apply to products only, never to the delivery fee or the tip
    taxes = subtotal * final_tax_rate
    total_products = subtotal + taxes
    total_fees = delivery_fee + tip
    grand_total = total_products + total_fees

    merchant_amount = total_products
    driver_amount = total_fees

    if policy is CommissionPolicy.ON_TOP:
        admin_commission = grand_total * commission_rate
        grand_total += admin_commission
    else:
        admin_commission = grand_total * commission_rate
        if policy is CommissionPolicy.FROM_MERCHANT:
            merchant_amount -= admin_commission
        elif policy is CommissionPolicy.FROM_DRIVER:
            driver_amount -= admin_commission

    breakdown = ReceiptBreakdown(
        items=receipt_items,
        subtotal=subtotal,
        taxes=taxes,
        tax_rate=final_tax_rate,
        delivery_fee=delivery_fee,
        tip=tip,
        total_products=total_products,
        total_fees=total_fees,
        grand_total=grand_total,
        merchant_amount=merchant_amount,
        driver_amount=driver_amount,
        admin_commission=admin_commission,
        commission_policy=policy.value,
    )

    if not breakdown.is_balanced:
        logger.warning(
            f"Receipt split does not balance under '{policy.value}' policy: "
            f"total={grand_total} merchant={merchant_amount} driver={driver_amount} platform={admin_commission}"
        )
    return breakdown
