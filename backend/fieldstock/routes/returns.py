# Overview: Flask API routes for returns to warehouse; parses input and returns JSON responses.

# backend/fieldstock/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- A technician (or someone on their behalf) files a PENDING return
- Approval moves the pinned units into a stock area (FAULTY for faulty returns)
- Rejection only closes the return; the units stay with the technician
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import InventoryError
from ..services import return_service
from ..decorators import require_context


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_context
def create_return_route():
    """
    Create a PENDING return.

    Request body:
    {
        "technician_id": 7,  (optional, defaults to the caller)
        "reason": "UNUSED" | "FAULTY" | "CANCELLED",
        "ticket_id": "TKT-9",  (optional)
        "consumption_id": 12,  (optional)
        "items": [
            {"material_id": 4, "serial_numbers": ["SN-100"]},
            {"material_id": 4, "unit_id": 55},
            {"material_id": 3, "quantity": 2}
        ],
        "remarks": "..."
    }

    Returns:
        201: {"return": {...}}
        409: Unit not held by the technician, or already on a pending return
    """
    try:
        record = return_service.submit_return(g.ctx, request.get_json(silent=True))
        return jsonify({"return": record}), 201

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
@require_context
def list_returns_route():
    """Query params: status, technician_id"""
    try:
        returns = return_service.list_returns(
            g.ctx,
            status=request.args.get("status"),
            technician_id=request.args.get("technician_id", type=int),
        )
        return jsonify({"returns": returns, "count": len(returns)}), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_context
def get_return_route(return_id: int):
    try:
        return jsonify({"return": return_service.get_return(g.ctx, return_id)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/approve")
@require_context
def approve_return_route(return_id: int):
    """
    Approve a PENDING return.

    Request body (optional):
    {
        "stock_area_id": 2,  (defaults to the first active stock area)
        "remarks": "..."
    }

    Returns:
        200: {"return": {...}, "unit_ids": [...]}
        409: Return not PENDING, or a unit is no longer with the technician
    """
    try:
        data = request.get_json(silent=True) or {}
        result = return_service.approve_return(
            g.ctx,
            return_id,
            stock_area_id=data.get("stock_area_id"),
            remarks=data.get("remarks"),
        )
        return jsonify(result), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/reject")
@require_context
def reject_return_route(return_id: int):
    """
    Reject a PENDING return.

    Request body (optional): {"remarks": "..."}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = return_service.reject_return(g.ctx, return_id, remarks=data.get("remarks"))
        return jsonify(result), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject return")
        return jsonify({"error": "Internal server error"}), 500
