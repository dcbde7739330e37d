# Overview: Flask API routes for material consumption; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import InventoryError
from ..services import consumption_service
from ..decorators import require_context


consumptions_bp = Blueprint("consumptions", __name__, url_prefix="/api/consumptions")


@consumptions_bp.post("")
@require_context
def create_consumption_route():
    """
    Consume material against a ticket.

    Request body:
    {
        "from_user_id": 7,  (optional: technician stock is used first)
        "stock_area_id": 1,  (optional: fallback area, any area when absent)
        "ticket_id": "TKT-9",
        "external_system_ref_id": "CRM-5521",
        "customer_data": {"name": "...", "address": "..."},
        "items": [
            {"material_id": 3, "quantity": 3},
            {"material_id": 4, "serial_numbers": ["SN-100"]}
        ],
        "consumption_date": "2025-09-02",
        "remarks": "..."
    }

    Returns:
        201: {"consumption": {...}, "unit_ids": [...]}
        409: Insufficient stock
    """
    try:
        result = consumption_service.submit_consumption(g.ctx, request.get_json(silent=True))
        return jsonify(result), 201

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create consumption")
        return jsonify({"error": "Internal server error"}), 500


@consumptions_bp.get("")
@require_context
def list_consumptions_route():
    """Query params: ticket_id, stock_area_id, from_user_id"""
    try:
        consumptions = consumption_service.list_consumptions(
            g.ctx,
            ticket_id=request.args.get("ticket_id"),
            stock_area_id=request.args.get("stock_area_id", type=int),
            from_user_id=request.args.get("from_user_id", type=int),
        )
        return jsonify({"consumptions": consumptions, "count": len(consumptions)}), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list consumptions")
        return jsonify({"error": "Internal server error"}), 500


@consumptions_bp.get("/<int:consumption_id>")
@require_context
def get_consumption_route(consumption_id: int):
    try:
        return jsonify({"consumption": consumption_service.get_consumption(g.ctx, consumption_id)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get consumption")
        return jsonify({"error": "Internal server error"}), 500
