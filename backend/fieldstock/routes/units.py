# Overview: Flask API routes for reading individual ledger units.

from flask import Blueprint, jsonify, g, current_app

from ..errors import InventoryError
from ..services import ledger_service
from ..decorators import require_context


units_bp = Blueprint("units", __name__, url_prefix="/api/units")


@units_bp.get("/<int:unit_id>")
@require_context
def get_unit_route(unit_id: int):
    try:
        return jsonify({"unit": ledger_service.get_unit(g.ctx, unit_id).to_dict()}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get unit")
        return jsonify({"error": "Internal server error"}), 500


@units_bp.get("/by-serial/<path:serial_number>")
@require_context
def get_unit_by_serial_route(serial_number: str):
    try:
        unit = ledger_service.find_by_serial(g.ctx, serial_number)
        if unit is None:
            return jsonify({"error": f"Serial number {serial_number} not found", "kind": "NotFoundError"}), 404
        return jsonify({"unit": unit.to_dict()}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to find unit by serial")
        return jsonify({"error": "Internal server error"}), 500
