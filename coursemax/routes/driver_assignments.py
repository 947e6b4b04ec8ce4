# coursemax/routes/driver_assignments.py
import logging

from flask import Blueprint, current_app, jsonify, request

from ..errors import DependencyUnavailable, ValidationFailure
from ..logic.dispatch import auto_assign_driver
from ..models import AcceptReason
from ..utils.helpers import serialize_data

logger = logging.getLogger(__name__)

dispatch_bp = Blueprint('dispatch', __name__)

ACCEPT_MESSAGES = {
    AcceptReason.ACCEPTED: ("Delivery accepted", 200),
    AcceptReason.RACE_LOST: ("This delivery was already accepted by another driver", 409),
    AcceptReason.EXPIRED: ("This delivery offer has expired", 409),
    AcceptReason.CANCELLED: ("This delivery was cancelled", 409),
    AcceptReason.NOT_FOUND: ("Assignment not found", 404),
}


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailure("A JSON object body is required")
    return data


def _coordinator():
    return current_app.assignment_coordinator


@dispatch_bp.route('/auto-assign', methods=['POST'])
def auto_assign():
    data = _json_body()
    if current_app.distance_provider is None:
        raise DependencyUnavailable(detail="Distance provider not configured")
    result = auto_assign_driver(
        current_app.repository,
        current_app.distance_provider,
        _coordinator(),
        store_id=data.get('store_id'),
        delivery_address=data.get('delivery_address'),
        delivery_city=data.get('delivery_city'),
        delivery_postal_code=data.get('delivery_postal_code'),
    )
    return jsonify(serialize_data({"status": "success" if result["success"] else "error", **result})), 200


@dispatch_bp.route('/assignments', methods=['POST'])
def create_assignment():
    data = _json_body()
    assignment = _coordinator().create_assignment(
        store_id=data.get('store_id'),
        order_ids=data.get('order_ids'),
        eligible_driver_ids=data.get('driver_ids') or data.get('available_drivers'),
        total_value=data.get('total_value', 0),
        ttl_seconds=data.get('ttl_seconds'),
    )
    return jsonify(serialize_data({"status": "success", "data": assignment.to_dict()})), 201


@dispatch_bp.route('/assignments', methods=['GET'])
def list_assignments():
    assignments = _coordinator().list_assignments(
        status=request.args.get('status'),
        driver_id=request.args.get('driver_id'),
    )
    return jsonify(serialize_data({"status": "success", "data": [a.to_dict() for a in assignments]})), 200


@dispatch_bp.route('/assignments/<assignment_id>', methods=['GET'])
def get_assignment(assignment_id):
    assignment = _coordinator().get_assignment(assignment_id)
    return jsonify(serialize_data({"status": "success", "data": assignment.to_dict()})), 200


@dispatch_bp.route('/assignments/<assignment_id>/accept', methods=['POST'])
def accept_assignment(assignment_id):
    driver_id = _json_body().get('driver_id')
    if not driver_id:
        raise ValidationFailure("driver_id is required")

    outcome = _coordinator().accept_assignment(assignment_id, driver_id)
    message, status_code = ACCEPT_MESSAGES[outcome.reason]
    body = {
        "status": "success" if outcome else "error",
        "accepted": outcome.accepted,
        "reason": outcome.reason.value,
        "message": message,
    }
    if outcome:
        body["data"] = outcome.assignment.to_dict()
    return jsonify(serialize_data(body)), status_code


@dispatch_bp.route('/assignments/<assignment_id>/complete', methods=['POST'])
def complete_assignment(assignment_id):
    driver_id = _json_body().get('driver_id')
    if not driver_id:
        raise ValidationFailure("driver_id is required")
    assignment = _coordinator().complete_assignment(assignment_id, driver_id)
    return jsonify(serialize_data({"status": "success", "data": assignment.to_dict()})), 200


@dispatch_bp.route('/assignments/<assignment_id>/cancel', methods=['POST'])
def cancel_assignment(assignment_id):
    assignment = _coordinator().cancel_assignment(assignment_id)
    return jsonify(serialize_data({"status": "success", "data": assignment.to_dict()})), 200


@dispatch_bp.route('/assignments/cleanup-expired', methods=['POST'])
def cleanup_expired():
    expired = _coordinator().expire_sweep()
    return jsonify({"status": "success", "expired": len(expired), "assignment_ids": expired}), 200
