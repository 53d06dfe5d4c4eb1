# Overview: Flask API routes for meter readings; details and corrections.

# backend/fuelpos/routes/readings.py
"""
Meter Reading API Routes

PATCH runs the correction cascade: the edited reading, every later reading
of the same hose, the shift's payment allocations and the cash register
are updated in one transaction.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError
from ..services import cascade_service, reading_service


readings_bp = Blueprint("readings", __name__, url_prefix="/api/readings")


@readings_bp.get("/<int:reading_id>")
def get_reading_route(reading_id: int):
    try:
        return jsonify({"reading": reading_service.get_reading_details(reading_id)}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status


@readings_bp.patch("/<int:reading_id>")
def correct_reading_route(reading_id: int):
    """
    Correct the quantity sold of a reading.

    Request body:
    {
        "quantity_sold": "70.000",
        "actor_id": 3,
        "payment_method_code": "CASH"  (optional, defaults to config)
    }
    """
    try:
        data = request.get_json() or {}
        if data.get("quantity_sold") in (None, ""):
            return jsonify({"error": "quantity_sold required"}), 400

        result = cascade_service.correct_meter_reading(
            reading_id,
            str(data["quantity_sold"]),
            actor_id=data.get("actor_id"),
            payment_method_code=data.get("payment_method_code"),
        )
        return jsonify(result.to_dict()), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to correct meter reading")
        return jsonify({"error": "Internal server error"}), 500
