# Overview: Flask API routes for stock transfers; parses input and returns JSON responses.

# backend/fieldstock/routes/transfers.py
"""
Stock Transfer API Routes

DESIGN:
- One POST moves every unit of the transfer or nothing at all
- Destination is a tagged object (WAREHOUSE or PERSON)
- Bulk lines are filled oldest stock first
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import InventoryError
from ..services import transfer_service
from ..decorators import require_context


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.post("")
@require_context
def create_transfer_route():
    """
    Transfer stock out of a stock area.

    Request body:
    {
        "from_stock_area_id": 1,
        "destination": {"type": "PERSON", "user_id": 7},
        "ticket_id": "TKT-9",  (optional)
        "items": [
            {"material_id": 4, "serial_numbers": ["SN-100"]},
            {"material_id": 3, "quantity": 5}
        ],
        "transfer_date": "2025-09-01",  (optional)
        "remarks": "..."  (optional)
    }

    Returns:
        201: {"transfer": {...}, "unit_ids": [...]}
        400: Invalid input
        404: Unknown serial number
        409: Insufficient stock, or a serial number is not available at the source
    """
    try:
        result = transfer_service.submit_transfer(g.ctx, request.get_json(silent=True))
        return jsonify(result), 201

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.get("")
@require_context
def list_transfers_route():
    """Query params: status, from_stock_area_id, to_user_id"""
    try:
        transfers = transfer_service.list_transfers(
            g.ctx,
            status=request.args.get("status"),
            from_stock_area_id=request.args.get("from_stock_area_id", type=int),
            to_user_id=request.args.get("to_user_id", type=int),
        )
        return jsonify({"transfers": transfers, "count": len(transfers)}), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.get("/<int:transfer_id>")
@require_context
def get_transfer_route(transfer_id: int):
    try:
        return jsonify({"transfer": transfer_service.get_transfer(g.ctx, transfer_id)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get transfer")
        return jsonify({"error": "Internal server error"}), 500
