"""Tests for sharing a delivery fee between several merchants."""

from decimal import Decimal

import pytest

from coursemax.errors import ValidationFailure
from coursemax.logic.fee_distribution import DistributionConfig, MerchantOrder, distribute_delivery_fee

ORDERS = [
    {"merchant_id": "bakery", "merchant_name": "Boulangerie", "subtotal": "30.00", "distance": 2.0},
    {"merchant_id": "grocer", "merchant_name": "Épicerie", "subtotal": "60.00", "distance": 6.0},
    {"merchant_id": "butcher", "merchant_name": "Boucherie", "subtotal": "10.00", "distance": 2.0},
]


def _fees(result):
    return {f["merchant_id"]: f["total_fee"] for f in result["merchant_fees"]}


def test_proportional_by_subtotal():
    result = distribute_delivery_fee(ORDERS, "10.00", "proportional")

    assert _fees(result) == {"bakery": Decimal("3.00"), "grocer": Decimal("6.00"), "butcher": Decimal("1.00")}
    assert result["distribution_method"] == "proportional"


def test_equal_split_tolerates_one_cent_of_rounding():
    result = distribute_delivery_fee(ORDERS, "10.00", "equal")
    fees = _fees(result)

    assert fees["bakery"] == fees["grocer"] == Decimal("3.33")
    # 0.01 left over is within tolerance, so nothing is moved
    assert fees["butcher"] == Decimal("3.33")


def test_remainder_above_a_cent_goes_to_last_merchant():
    config = DistributionConfig(minimum_fee=Decimal("2.00"))
    result = distribute_delivery_fee(ORDERS, "8.00", "proportional", config)
    fees = _fees(result)

    # butcher is raised from 0.80 to the 2.00 minimum, then gives the 1.20 overshoot back
    assert fees["bakery"] == Decimal("2.40")
    assert fees["grocer"] == Decimal("4.80")
    assert fees["butcher"] == Decimal("0.80")
    assert sum(fees.values()) == Decimal("8.00")


def test_distance_based():
    fees = _fees(distribute_delivery_fee(ORDERS, "10.00", "distance_based"))

    assert fees == {"bakery": Decimal("2.00"), "grocer": Decimal("6.00"), "butcher": Decimal("2.00")}


def test_distance_based_falls_back_to_equal_without_distances():
    orders = [{"merchant_id": "a", "subtotal": 10}, {"merchant_id": "b", "subtotal": 20}]

    fees = _fees(distribute_delivery_fee(orders, "8.00", "distance_based"))

    assert fees == {"a": Decimal("4.00"), "b": Decimal("4.00")}


def test_hybrid_weights():
    result = distribute_delivery_fee(ORDERS, "10.00", "hybrid")
    fees = _fees(result)

    # value 0.6, distance 0.3, priority 0.1 (everyone at default priority 2)
    assert fees["grocer"] == Decimal("5.73")
    assert abs(sum(fees.values()) - Decimal("10.00")) <= Decimal("0.01")
    grocer = next(f for f in result["merchant_fees"] if f["merchant_id"] == "grocer")
    assert grocer["base_fee"] + grocer["distance_fee"] + grocer["priority_fee"] == grocer["total_fee"]


def test_fees_are_clamped_to_maximum():
    orders = [{"merchant_id": "big", "subtotal": 990}, {"merchant_id": "small", "subtotal": 10}]

    fees = _fees(distribute_delivery_fee(orders, "20.00", "proportional"))

    assert fees["big"] == Decimal("15.00")
    assert fees["small"] == Decimal("5.00")


def test_summary():
    summary = distribute_delivery_fee(ORDERS, "7.50", "equal")["summary"]

    assert summary["total_order_value"] == Decimal("100.00")
    assert summary["average_fee_per_merchant"] == Decimal("2.50")
    assert summary["savings"] == Decimal("1.47")
    assert summary["fee_efficiency"] == 100


def test_no_savings_when_grouped_fee_is_higher():
    summary = distribute_delivery_fee(ORDERS[:1], "12.00", "equal")["summary"]

    assert summary["savings"] == Decimal("0.00")


def test_merchant_order_from_mapping_defaults():
    order = MerchantOrder.from_mapping({"merchant_id": 7, "subtotal": "12.5"})

    assert order.merchant_id == "7"
    assert order.priority == 2
    assert order.distance is None


@pytest.mark.parametrize(
    "orders, fee, method",
    [
        (ORDERS, "10.00", "by_weight"),
        ([], "10.00", "equal"),
        (ORDERS, "-1", "equal"),
        ([{"merchant_name": "no id", "subtotal": 5}], "10.00", "equal"),
    ],
)
def test_rejects_bad_input(orders, fee, method):
    with pytest.raises(ValidationFailure):
        distribute_delivery_fee(orders, fee, method)
