"""Tests for the receipt breakdown, tips and currency formatting."""

from decimal import Decimal

import pytest

from coursemax.logic.pricing import calculate_delivery_fee
from coursemax.logic.receipt import CommissionPolicy, calculate_receipt, get_tax_rate
from coursemax.logic.tips import calculate_suggested_tip
from coursemax.models import CartLine
from coursemax.utils.money import format_currency, round_money

CART = [
    {"name": "Pain", "quantity": 2, "price": 3.50},
    {"name": "Lait", "quantity": 1, "price": 4.99},
]


def test_bread_and_milk_scenario():
    quote = calculate_delivery_fee(4.2, 14)
    receipt = calculate_receipt(CART, delivery_fee=quote.delivery_fee, tip=0, tax_rate="0.15")

    assert quote.delivery_fee == Decimal("7.00")
    assert quote.pricing_tier == "3-6 km"
    assert receipt.subtotal == Decimal("11.99")
    assert receipt.taxes == Decimal("1.7985")
    assert receipt.grand_total == Decimal("20.7885")
    assert round_money(receipt.grand_total) == Decimal("20.79")
    assert receipt.merchant_amount == Decimal("13.7885")
    assert receipt.driver_amount == Decimal("7.00")
    assert [item.total for item in receipt.items] == [Decimal("7.00"), Decimal("4.99")]


def test_split_is_exact_without_commission():
    receipt = calculate_receipt(CART, delivery_fee="10.00", tip="3.25", tax_rate="0.14975")

    assert receipt.admin_commission == 0
    assert receipt.merchant_amount + receipt.driver_amount == receipt.grand_total
    assert receipt.is_balanced


def test_taxes_ignore_tip_and_delivery_fee():
    low = calculate_receipt(CART, delivery_fee=5, tip=0)
    high = calculate_receipt(CART, delivery_fee=12, tip=20)

    assert low.taxes == high.taxes
    assert low.total_products == high.total_products


def test_receipt_is_pure():
    lines = [CartLine("Pain", 2, Decimal("3.50"))]

    assert calculate_receipt(lines, 7, 2) == calculate_receipt(lines, 7, 2)


@pytest.mark.parametrize("location", ["Montréal, QC", "Quebec City", "Valleyfield qc", None, "Toronto, ON"])
def test_tax_rate_by_location(location):
    assert get_tax_rate(location) == Decimal("0.15")


def test_location_used_when_no_explicit_rate():
    receipt = calculate_receipt(CART, 7, 0, location="Salaberry-de-Valleyfield, QC")

    assert receipt.tax_rate == Decimal("0.15")


def test_explicit_rate_wins_over_location():
    receipt = calculate_receipt(CART, 7, 0, tax_rate="0.05", location="Quebec")

    assert receipt.taxes == Decimal("0.5995")


def test_legacy_commission_is_not_deducted():
    receipt = calculate_receipt(CART, 7, 0, tax_rate="0.15", admin_commission_rate="0.10")

    assert receipt.commission_policy == "legacy"
    assert receipt.admin_commission == Decimal("2.07885")
    assert receipt.merchant_amount == Decimal("13.7885")
    assert receipt.driver_amount == Decimal("7.00")
    assert not receipt.is_balanced


@pytest.mark.parametrize(
    "policy, merchant, driver, grand_total",
    [
        (CommissionPolicy.FROM_MERCHANT, "11.70965", "7.00", "20.7885"),
        (CommissionPolicy.FROM_DRIVER, "13.7885", "4.92115", "20.7885"),
        (CommissionPolicy.ON_TOP, "13.7885", "7.00", "22.86735"),
    ],
)
def test_balancing_policies(policy, merchant, driver, grand_total):
    receipt = calculate_receipt(
        CART, 7, 0, tax_rate="0.15", admin_commission_rate="0.10", commission_policy=policy
    )

    assert receipt.merchant_amount == Decimal(merchant)
    assert receipt.driver_amount == Decimal(driver)
    assert receipt.grand_total == Decimal(grand_total)
    assert receipt.is_balanced


def test_rounded_dict_for_display():
    payload = calculate_receipt(CART, 7, 0, tax_rate="0.15").to_dict(rounded=True)

    assert payload["taxes"] == Decimal("1.80")
    assert payload["grand_total"] == Decimal("20.79")
    assert payload["is_balanced"] is True


def test_suggested_tips_for_100():
    assert calculate_suggested_tip(100) == {
        "percentage_10": Decimal("10.00"),
        "percentage_15": Decimal("15.00"),
        "percentage_20": Decimal("20.00"),
    }


def test_suggested_tips_round_half_away_from_zero():
    # 15% of 20.10 = 3.015
    assert calculate_suggested_tip("20.10")["percentage_15"] == Decimal("3.02")


def test_format_currency_fr_ca():
    assert format_currency(Decimal("20.7885")) == "20,79\u00a0$"
    assert format_currency(1234.5) == "1\u00a0234,50\u00a0$"
    assert format_currency(-3) == "-3,00\u00a0$"
