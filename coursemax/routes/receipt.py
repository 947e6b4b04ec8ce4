# coursemax/routes/receipt.py
import logging

from flask import Blueprint, current_app, jsonify, request

from ..errors import ValidationFailure
from ..logic.receipt import CommissionPolicy, calculate_receipt
from ..logic.tips import calculate_suggested_tip
from ..utils.helpers import serialize_data
from ..utils.money import D, format_currency

logger = logging.getLogger(__name__)

receipt_bp = Blueprint('receipt', __name__)


def _amount(data, key, default=None, *, required=False):
    value = data.get(key, default)
    if value is None:
        if required:
            raise ValidationFailure(f"{key} is required")
        return None
    try:
        amount = D(value)
    except (ArithmeticError, TypeError) as e:
        raise ValidationFailure(f"{key} must be a number") from e
    if not amount.is_finite() or amount < 0:
        raise ValidationFailure(f"{key} must be a non-negative number")
    return amount


def _cart(items):
    if not isinstance(items, list) or not items:
        raise ValidationFailure("items must be a non-empty list")
    cart = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationFailure(f"items[{index}] must be an object")
        quantity = item.get('quantity')
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationFailure(f"items[{index}].quantity must be a positive integer")
        price = _amount(item, 'unit_price', item.get('price'), required=True)
        cart.append({"name": str(item.get('name', '')), "quantity": quantity, "unit_price": price})
    return cart


@receipt_bp.route('/calculate', methods=['POST'])
def calculate():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailure("A JSON object body is required")

    policy = data.get('commission_policy') or current_app.config.get('RECEIPT_COMMISSION_POLICY', 'legacy')
    if not isinstance(policy, str) or policy not in {p.value for p in CommissionPolicy}:
        raise ValidationFailure(f"Unknown commission_policy: {policy}")

    breakdown = calculate_receipt(
        _cart(data.get('items')),
        delivery_fee=_amount(data, 'delivery_fee', 0),
        tip=_amount(data, 'tip', 0),
        tax_rate=_amount(data, 'tax_rate'),
        admin_commission_rate=_amount(data, 'admin_commission_rate',
                                      current_app.config.get('ADMIN_COMMISSION_RATE', 0)),
        location=data.get('location'),
        commission_policy=policy,
    )
    payload = breakdown.to_dict(rounded=True)
    return jsonify(serialize_data({
        "status": "success",
        "data": payload,
        "formatted": {
            key: format_currency(payload[key])
            for key in ("subtotal", "taxes", "delivery_fee", "tip", "grand_total")
        },
    })), 200


@receipt_bp.route('/suggested-tips', methods=['POST'])
def suggested_tips():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailure("A JSON object body is required")
    amount = _amount(data, 'amount', required=True)
    tips = calculate_suggested_tip(amount)
    return jsonify(serialize_data({
        "status": "success",
        "data": tips,
        "formatted": {key: format_currency(value) for key, value in tips.items()},
    })), 200
