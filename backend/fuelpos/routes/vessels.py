# Overview: Flask API routes for vessels; dip readings, fills and calibration tables.

# backend/fuelpos/routes/vessels.py
"""
Vessel API Routes

WHY: Tank and compartment levels are measured by dipping. These endpoints
convert heights into volumes, record fills and level readings, and manage
each vessel's calibration table.

DESIGN:
- Heights and volumes travel as decimal strings (no binary floats)
- Domain errors map to JSON {"error", "kind"} with their HTTP status
"""

from flask import Blueprint, Response, current_app, jsonify, request

from ..errors import DomainError, ValidationError
from ..numeric import decimal_str
from ..services import calibration_service, vessel_service


vessels_bp = Blueprint("vessels", __name__, url_prefix="/api/vessels")


def _decimal_field(value, name):
    if value is None or value == "":
        raise ValidationError(f"{name} required")
    return calibration_service.parse_measure(value, name)


@vessels_bp.get("/<int:vessel_id>/volume")
def volume_at_height_route(vessel_id: int):
    """
    Volume held at a dip height.

    Query: ?height=123.5 (cm)
    """
    try:
        height = _decimal_field(request.args.get("height"), "height")
        volume = vessel_service.interpolate_height(vessel_id, height)
        return jsonify({
            "vessel_id": vessel_id,
            "height": decimal_str(height),
            "volume": decimal_str(volume),
        }), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to interpolate vessel volume")
        return jsonify({"error": "Internal server error"}), 500


@vessels_bp.post("/<int:vessel_id>/fills")
def record_fill_route(vessel_id: int):
    """
    Record a delivery from before/after dip heights.

    Request body:
    {
        "previous_height": "35.0",
        "new_height": "120.5",
        "actor_id": 7  (optional)
    }
    """
    try:
        data = request.get_json() or {}
        result = vessel_service.record_vessel_fill(
            vessel_id,
            _decimal_field(data.get("previous_height"), "previous_height"),
            _decimal_field(data.get("new_height"), "new_height"),
            actor_id=data.get("actor_id"),
        )
        return jsonify(result.to_dict()), 201 if result.fill else 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record vessel fill")
        return jsonify({"error": "Internal server error"}), 500


@vessels_bp.post("/<int:vessel_id>/level")
def update_level_route(vessel_id: int):
    """Set the vessel's level from a dip reading. Body: {"height": "88.0"}"""
    try:
        data = request.get_json() or {}
        result = vessel_service.update_level_by_height(vessel_id, _decimal_field(data.get("height"), "height"))
        return jsonify(result.to_dict()), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update vessel level")
        return jsonify({"error": "Internal server error"}), 500


@vessels_bp.get("/<int:vessel_id>/calibration")
def get_calibration_route(vessel_id: int):
    try:
        table = calibration_service.load_table(vessel_id)
        return jsonify({"vessel_id": vessel_id, "points": table.to_rows()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status


@vessels_bp.put("/<int:vessel_id>/calibration")
def replace_calibration_route(vessel_id: int):
    """
    Replace the calibration table wholesale.

    Request body:
    {
        "points": [{"height": "0", "volume": "0"}, {"height": "10", "volume": "500"}]
    }
    """
    try:
        data = request.get_json() or {}
        rows = data.get("points")
        if not isinstance(rows, list) or not rows:
            return jsonify({"error": "points must be a non-empty list"}), 400

        points = [
            (_decimal_field(row.get("height"), "height"), _decimal_field(row.get("volume"), "volume"))
            for row in rows
        ]
        table = calibration_service.replace_table(vessel_id, points)
        return jsonify({
            "vessel_id": vessel_id,
            "points": table.to_rows(),
            "validation": table.validate().to_dict(),
        }), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to replace calibration table")
        return jsonify({"error": "Internal server error"}), 500


@vessels_bp.get("/<int:vessel_id>/calibration/validate")
def validate_calibration_route(vessel_id: int):
    try:
        return jsonify(calibration_service.validate_table(vessel_id).to_dict()), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status


@vessels_bp.post("/<int:vessel_id>/calibration/generate")
def generate_calibration_route(vessel_id: int):
    """
    Generate a table for a cylindrical vessel.

    Request body: {"diameter": "2.5", "max_height": "3.0", "step": "1"}
    (diameter and max_height in metres, step in cm)
    """
    try:
        data = request.get_json() or {}
        table = calibration_service.generate_table(
            vessel_id,
            _decimal_field(data.get("diameter"), "diameter"),
            _decimal_field(data.get("max_height"), "max_height"),
            _decimal_field(data.get("step", 1), "step"),
        )
        return jsonify({"vessel_id": vessel_id, "point_count": len(table)}), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to generate calibration table")
        return jsonify({"error": "Internal server error"}), 500


@vessels_bp.get("/<int:vessel_id>/calibration.csv")
def export_calibration_route(vessel_id: int):
    try:
        body = calibration_service.export_table_csv(vessel_id)
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename=vessel_{vessel_id}_calibration.csv"},
    )
