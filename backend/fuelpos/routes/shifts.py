# Overview: Flask API routes for shifts of a point of sale; cash balance and audit trail.

# backend/fuelpos/routes/shifts.py
from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError, NotFound
from ..extensions import db
from ..models import Shift
from ..services import audit_service, cash_register_service


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/points-of-sale")


@shifts_bp.get("/<int:pos_id>/shifts/<int:shift_id>/cash-balance")
def cash_balance_route(pos_id: int, shift_id: int):
    """Opening and closing cash balance of a shift, derived from the whole chain."""
    try:
        balance = cash_register_service.get_chained_cash_balance(pos_id, shift_id)
        body = {"point_of_sale_id": pos_id, "shift_id": shift_id}
        body.update(balance.to_dict())
        return jsonify(body), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to compute chained cash balance")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:pos_id>/shifts/<int:shift_id>/changes")
def shift_changes_route(pos_id: int, shift_id: int):
    """Paginated audit trail of a shift. Query: ?page=1&limit=20"""
    try:
        shift = db.session.get(Shift, shift_id)
        if not shift or shift.point_of_sale_id != pos_id:
            raise NotFound("Shift", shift_id)

        page = max(request.args.get("page", 1, type=int), 1)
        limit = min(max(request.args.get("limit", 20, type=int), 1), 100)
        return jsonify(audit_service.list_changes(shift_id, page=page, limit=limit)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
