# coursemax/routes/commissions.py
import logging

from flask import Blueprint, current_app, jsonify, request

from ..config import DELIVERY_COMMISSION_SETTING_KEY
from ..errors import NotFound, ValidationFailure
from ..logic.commission import (
    aggregate_commission_stats,
    calculate_delivery_commission,
    resolve_commission_percent,
    resolve_range,
)
from ..utils.helpers import serialize_data

logger = logging.getLogger(__name__)

commissions_bp = Blueprint('commissions', __name__)


@commissions_bp.route('/calculate', methods=['POST'])
def calculate_commission():
    """Compute and persist the platform/driver split of one order's delivery fee."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get('order_id'):
        raise ValidationFailure("order_id is required")
    order_id = data['order_id']
    driver_id = data.get('driver_id')

    repository = current_app.repository
    delivery_fee = repository.get_order_delivery_fee(order_id)
    if delivery_fee is None:
        raise NotFound("Order not found or delivery fee not set")

    percent = resolve_commission_percent(repository.get_platform_setting(DELIVERY_COMMISSION_SETTING_KEY))
    split = calculate_delivery_commission(delivery_fee, percent)

    record = repository.upsert_commission(serialize_data({"order_id": order_id, "driver_id": driver_id, **split}))
    logger.info(
        f"💸 Commission for order {order_id}: platform {split['platform_amount']} / driver {split['driver_amount']}"
    )
    return jsonify(serialize_data({"status": "success", "data": {**split, "commission": record}})), 200


@commissions_bp.route('/stats', methods=['GET', 'POST'])
def commission_stats():
    if request.method == 'POST':
        params = request.get_json(silent=True) or {}
        if not isinstance(params, dict):
            raise ValidationFailure("A JSON object body is required")
    else:
        params = request.args.to_dict()

    period = params.get('period') or 'month'
    driver_id = params.get('driver_id')
    start, end = resolve_range(period, params.get('start_date'), params.get('end_date'))
    logger.info(f"📊 Commission stats for {period}: {start.isoformat()} -> {end.isoformat()}")

    records = current_app.repository.list_commissions(start, end, driver_id=driver_id)
    stats = aggregate_commission_stats(records, period=period, driver_id=driver_id)

    return jsonify(serialize_data({
        "status": "success",
        "period": period,
        "date_range": {"start": start, "end": end},
        "stats": stats,
    })), 200
