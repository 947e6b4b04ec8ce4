# coursemax/routes/delivery_calculator.py
import logging
from datetime import datetime, timedelta, timezone

from flask import Blueprint, current_app, jsonify, request

from ..config import DELIVERY_FEE_TIERS, LONG_DISTANCE_BONUS, LONG_DISTANCE_THRESHOLD_KM
from ..errors import DependencyUnavailable, NotFound, ValidationFailure
from ..logic.fee_distribution import METHODS, distribute_delivery_fee
from ..logic.pricing import calculate_delivery_fee
from ..providers.distance_provider import Coordinates
from ..utils.helpers import serialize_data

logger = logging.getLogger(__name__)

delivery_calculator_bp = Blueprint('delivery_calculator', __name__)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailure("A JSON object body is required")
    return data


def _store_location(store):
    """Stored coordinates when present, else the address to geocode."""
    if store.get("latitude") is not None and store.get("longitude") is not None:
        return Coordinates(lon=float(store["longitude"]), lat=float(store["latitude"]))
    return f"{store.get('address', '')}, {store.get('city', '')}"


@delivery_calculator_bp.route('/calculate_fee', methods=['POST'])
def calculate_fee():
    """Price the delivery from a store to a client address."""
    data = _json_body()
    store_id = data.get('store_id')
    client_address = (data.get('client_address') or '').strip()
    client_city = (data.get('client_city') or '').strip()
    client_postal_code = (data.get('client_postal_code') or '').strip()
    order_id = data.get('order_id')

    if not store_id or not client_address or not client_city:
        raise ValidationFailure("store_id, client_address, and client_city are required")

    provider = current_app.distance_provider
    if provider is None:
        raise DependencyUnavailable(detail="Distance provider not configured")

    store = current_app.repository.get_store(store_id)
    if not store:
        raise NotFound("Store not found")

    client_full_address = f"{client_address}, {client_city}"
    if client_postal_code:
        client_full_address += f", {client_postal_code}"
    store_full_address = f"{store.get('address', '')}, {store.get('city', '')}"

    logger.info(f"🚚 Delivery fee: store {store_id} -> '{client_full_address}'")
    route = provider.measure(_store_location(store), client_full_address)
    quote = calculate_delivery_fee(route.distance_km, route.duration_minutes)

    if order_id:
        estimated_delivery = datetime.now(timezone.utc) + timedelta(minutes=quote.estimated_duration_minutes)
        current_app.repository.attach_delivery_quote(order_id, quote.delivery_fee, estimated_delivery)

    return jsonify(serialize_data({
        "status": "success",
        "calculation": quote.to_dict(),
        "store_info": {
            "id": store.get("id"),
            "name": store.get("name"),
            "address": store_full_address,
        },
        "client_info": {"address": client_full_address},
        "distance": {
            "km": round(route.distance_km, 2),
            "meters": route.distance_meters,
        },
        "estimated_duration": {
            "minutes": route.duration_minutes,
            "seconds": route.duration_seconds,
        },
    })), 200


@delivery_calculator_bp.route('/test', methods=['GET'])
def test_delivery_calculator():
    """Report the pricing configuration."""
    tiers = [
        {"max_km": upper, "fee": fee, "tier": label}
        for upper, fee, label in DELIVERY_FEE_TIERS
    ]
    return jsonify(serialize_data({
        "status": "success",
        "message": "Delivery calculator is working",
        "config": {
            "tiers": tiers,
            "long_distance_threshold_km": LONG_DISTANCE_THRESHOLD_KM,
            "long_distance_bonus": LONG_DISTANCE_BONUS,
            "distance_provider": current_app.config.get("DISTANCE_PROVIDER"),
            "distance_provider_ready": current_app.distance_provider is not None,
        },
    })), 200


@delivery_calculator_bp.route('/distribute_fee', methods=['POST'])
def distribute_fee():
    """Share one delivery fee between the merchants of a multi-merchant order."""
    data = _json_body()
    if data.get('total_fee') is None:
        raise ValidationFailure("total_fee is required")
    method = data.get('method')
    if method is not None and method not in METHODS:
        raise ValidationFailure(f"method must be one of: {', '.join(METHODS)}")
    try:
        result = distribute_delivery_fee(data.get('merchant_orders') or [], data['total_fee'], method)
    except ArithmeticError as e:
        raise ValidationFailure("total_fee must be a number") from e
    return jsonify(serialize_data({"status": "success", "data": result})), 200
