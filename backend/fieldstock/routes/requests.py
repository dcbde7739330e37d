# Overview: Flask API routes for material requests and their unit reservations.

# backend/fieldstock/routes/requests.py
"""
Material Request API Routes

DESIGN:
- A request is SUBMITTED, then APPROVED (possibly for less) or REJECTED
- Allocation reserves AVAILABLE units in a stock area as ALLOCATED
- Transfers that name the request move the reserved units (see /api/transfers)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import InventoryError
from ..services import request_service
from ..decorators import require_context


requests_bp = Blueprint("material_requests", __name__, url_prefix="/api/material-requests")


@requests_bp.post("")
@require_context
def create_request_route():
    """
    Create a SUBMITTED material request.

    Request body:
    {
        "requestor_user_id": 7,  (optional, defaults to the caller)
        "from_stock_area_id": 1,  (optional)
        "ticket_id": "TKT-9",  (optional)
        "service_area": "North",  (optional)
        "items": [{"material_id": 3, "quantity": 20}],
        "remarks": "..."
    }

    Returns:
        201: {"request": {...}}
    """
    try:
        record = request_service.submit_request(g.ctx, request.get_json(silent=True))
        return jsonify({"request": record}), 201

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create material request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("")
@require_context
def list_requests_route():
    """Query params: status, requestor_user_id, ticket_id"""
    try:
        requests = request_service.list_requests(
            g.ctx,
            status=request.args.get("status"),
            requestor_user_id=request.args.get("requestor_user_id", type=int),
            ticket_id=request.args.get("ticket_id"),
        )
        return jsonify({"requests": requests, "count": len(requests)}), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list material requests")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("/<int:request_id>")
@require_context
def get_request_route(request_id: int):
    try:
        return jsonify({"request": request_service.get_request(g.ctx, request_id)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get material request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/approve")
@require_context
def approve_request_route(request_id: int):
    """
    Approve a SUBMITTED request.

    Request body (optional):
    {
        "items": [{"line_id": 5, "approved_quantity": 10}],
        "remarks": "..."
    }
    """
    try:
        record = request_service.approve_request(g.ctx, request_id, request.get_json(silent=True))
        return jsonify({"request": record}), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve material request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/reject")
@require_context
def reject_request_route(request_id: int):
    """Request body (optional): {"remarks": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        record = request_service.reject_request(g.ctx, request_id, remarks=data.get("remarks"))
        return jsonify({"request": record}), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject material request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/allocate")
@require_context
def allocate_request_route(request_id: int):
    """
    Reserve units for an APPROVED request.

    Request body (optional):
    {
        "stock_area_id": 1,  (defaults to the request's from_stock_area_id)
        "items": [
            {"line_id": 5, "quantity": 4},
            {"line_id": 6, "serial_numbers": ["SN-100"]}
        ]
    }

    Returns:
        200: {"request": {...}, "unit_ids": [...]}
        409: Not enough AVAILABLE stock, or request not APPROVED
    """
    try:
        result = request_service.allocate_request(g.ctx, request_id, request.get_json(silent=True))
        return jsonify(result), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to allocate material request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.delete("/<int:request_id>/allocations/<int:allocation_id>")
@require_context
def cancel_allocation_route(request_id: int, allocation_id: int):
    try:
        record = request_service.cancel_allocation(g.ctx, request_id, allocation_id)
        return jsonify({"request": record}), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel allocation")
        return jsonify({"error": "Internal server error"}), 500
