# Overview: Flask API routes for stock levels and availability; read-only.

# backend/fieldstock/routes/stock.py
"""
Stock Read API Routes

- /levels: movement-derived stock per (material, stock area)
- /reconcile: movement-derived totals vs. ledger units
- /available: AVAILABLE units at a stock area, oldest first
- /person/<user_id>: a technician's stock with per-ticket summary
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import InventoryError, ValidationError
from ..services import ledger_service, stock_level_service
from ..decorators import require_context
from ..time_utils import parse_iso_date


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _bool_arg(name: str):
    value = request.args.get(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def _date_arg(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)")


@stock_bp.get("/levels")
@require_context
def stock_levels_route():
    """
    Stock levels.

    Query params:
        material_id, stock_area_id, material_type,
        date_from, date_to (YYYY-MM-DD),
        include_drafts (true/false; defaults to STOCK_LEVEL_INCLUDE_DRAFT_RECEIPTS)

    Returns:
        200: {"stock_levels": [...], "summary": {...}, "receipt_statuses_counted": [...], ...}
    """
    try:
        report = stock_level_service.get_stock_levels(
            g.ctx,
            material_id=request.args.get("material_id", type=int),
            stock_area_id=request.args.get("stock_area_id", type=int),
            material_type=request.args.get("material_type"),
            date_from=_date_arg("date_from"),
            date_to=_date_arg("date_to"),
            include_draft_receipts=_bool_arg("include_drafts"),
        )
        return jsonify(report), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute stock levels")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/levels/<int:material_id>")
@require_context
def stock_level_route(material_id: int):
    try:
        level = stock_level_service.get_stock_level(
            g.ctx,
            material_id,
            stock_area_id=request.args.get("stock_area_id", type=int),
            include_draft_receipts=_bool_arg("include_drafts"),
        )
        return jsonify(level), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute stock level")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/reconcile")
@require_context
def reconcile_route():
    try:
        result = stock_level_service.reconcile_stock_levels(
            g.ctx, material_id=request.args.get("material_id", type=int)
        )
        return jsonify(result), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile stock levels")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/available")
@require_context
def available_units_route():
    """
    Query params: material_id (required), stock_area_id, limit
    """
    try:
        material_id = request.args.get("material_id", type=int)
        if material_id is None:
            raise ValidationError("material_id is required")
        units = ledger_service.get_available_units(
            g.ctx,
            material_id,
            stock_area_id=request.args.get("stock_area_id", type=int),
            limit=request.args.get("limit", type=int),
        )
        return jsonify({"units": [u.to_dict() for u in units], "count": len(units)}), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list available units")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/person/<int:user_id>")
@require_context
def person_stock_route(user_id: int):
    """Query params: ticket_id, material_id"""
    try:
        stock = ledger_service.list_person_stock(
            g.ctx,
            user_id,
            ticket_id=request.args.get("ticket_id"),
            material_id=request.args.get("material_id", type=int),
        )
        return jsonify(stock), 200

    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list person stock")
        return jsonify({"error": "Internal server error"}), 500
