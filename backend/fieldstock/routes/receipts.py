# Overview: Flask API routes for goods receipts; parses input and returns JSON responses.

# backend/fieldstock/routes/receipts.py
"""
Goods Receipt API Routes

DESIGN:
- Receipts are recorded as DRAFT; completing one creates the ledger units
- "complete": true on creation records and completes in one transaction
- Completion is idempotent; repeated calls return the same unit ids
- Drafts can be cancelled; completed receipts cannot
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import InventoryError
from ..services import receipt_service
from ..decorators import require_context


receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/receipts")


@receipts_bp.post("")
@require_context
def create_receipt_route():
    """
    Record a goods receipt.

    Request body:
    {
        "stock_area_id": 1,
        "items": [
            {"material_id": 3, "quantity": 10},
            {"material_id": 4, "serial_number": "SN-100", "mac_id": "AA:BB:CC:00:11:22"}
        ],
        "slip_number": "GRN-SEP-2025-17",  (optional, generated when absent)
        "receipt_date": "2025-09-01",  (optional)
        "invoice_number": "...", "party_name": "...", "purchase_order": "...",
        "vehicle_number": "...", "remark": "...", "documents": ["files/grn-17.pdf"],
        "complete": false
    }

    Returns:
        201: {"receipt": {...}, "unit_ids": [...]}
        400: Invalid input
        409: Duplicate serial number
    """
    try:
        data = request.get_json(silent=True)
        complete = bool(data.get("complete")) if isinstance(data, dict) else False
        result = receipt_service.submit_receipt(g.ctx, data, complete=complete)
        return jsonify(result), 201

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create receipt")
        return jsonify({"error": "Internal server error"}), 500


@receipts_bp.get("")
@require_context
def list_receipts_route():
    """
    List receipts, newest first.

    Query params: status, stock_area_id
    """
    try:
        receipts = receipt_service.list_receipts(
            g.ctx,
            status=request.args.get("status"),
            stock_area_id=request.args.get("stock_area_id", type=int),
        )
        return jsonify({"receipts": receipts, "count": len(receipts)}), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list receipts")
        return jsonify({"error": "Internal server error"}), 500


@receipts_bp.get("/<int:receipt_id>")
@require_context
def get_receipt_route(receipt_id: int):
    try:
        return jsonify({"receipt": receipt_service.get_receipt(g.ctx, receipt_id)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get receipt")
        return jsonify({"error": "Internal server error"}), 500


@receipts_bp.post("/<int:receipt_id>/complete")
@require_context
def complete_receipt_route(receipt_id: int):
    """
    Complete a DRAFT receipt (creates AVAILABLE units in its stock area).

    Returns:
        200: {"receipt": {...}, "unit_ids": [...], "created": bool}
        404: Receipt not found
        409: Receipt cancelled, or duplicate serial number
    """
    try:
        result = receipt_service.complete_receipt(g.ctx, receipt_id)
        return jsonify(result), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to complete receipt")
        return jsonify({"error": "Internal server error"}), 500


@receipts_bp.post("/<int:receipt_id>/cancel")
@require_context
def cancel_receipt_route(receipt_id: int):
    """
    Cancel a DRAFT receipt.

    Returns:
        200: {"receipt": {...}}
        409: Receipt already completed
    """
    try:
        receipt = receipt_service.cancel_receipt(g.ctx, receipt_id)
        return jsonify({"receipt": receipt}), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel receipt")
        return jsonify({"error": "Internal server error"}), 500
