# Overview: Flask API routes for units of measure; parses input and returns JSON responses.

import math

from flask import Blueprint, request, jsonify, g, current_app

from ..services import unit_service
from ..services.unit_service import UnitNotFoundError, UnitConversionError, UnitInUseError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_permission, require_store_access

units_bp = Blueprint("units", __name__, url_prefix="/api/units")


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


@units_bp.get("")
@require_auth
@require_permission("units", "view")
@require_store_access
def list_units_route():
    """
    Query params:
    - base_units_only: true to list only units without a base unit
    - include_base_unit: true to add base_unit_name to each unit
    """
    units = unit_service.list_units(g.store_id, base_units_only=_flag("base_units_only"))
    include_base = _flag("include_base_unit")
    return jsonify({
        "units": [unit_service.unit_to_dict(u, include_base_unit=include_base) for u in units],
        "count": len(units),
    })


@units_bp.get("/<int:unit_id>")
@require_auth
@require_permission("units", "view")
@require_store_access
def get_unit_route(unit_id: int):
    try:
        unit = unit_service.get_unit(unit_id, g.store_id)
    except UnitNotFoundError:
        return jsonify({"error": "Unit not found"}), 404
    return jsonify({"unit": unit_service.unit_to_dict(unit, include_base_unit=True)})


@units_bp.post("")
@require_auth
@require_permission("units", "add")
@require_store_access
def create_unit_route():
    try:
        unit = unit_service.create_unit(g.store_id, request.get_json(silent=True))
        return jsonify({"unit": unit_service.unit_to_dict(unit, include_base_unit=True)}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create unit")
        return jsonify({"error": "Internal server error"}), 500


@units_bp.put("/<int:unit_id>")
@require_auth
@require_permission("units", "edit")
@require_store_access
def update_unit_route(unit_id: int):
    try:
        unit = unit_service.update_unit(unit_id, g.store_id, request.get_json(silent=True))
        return jsonify({"unit": unit_service.unit_to_dict(unit, include_base_unit=True)})
    except UnitNotFoundError:
        return jsonify({"error": "Unit not found"}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update unit")
        return jsonify({"error": "Internal server error"}), 500


@units_bp.delete("/<int:unit_id>")
@require_auth
@require_permission("units", "delete")
@require_store_access
def delete_unit_route(unit_id: int):
    try:
        unit_service.delete_unit(unit_id, g.store_id)
        return jsonify({"message": "Unit deleted"})
    except UnitNotFoundError:
        return jsonify({"error": "Unit not found"}), 404
    except UnitInUseError as e:
        return jsonify({
            "error": str(e),
            "product_count": e.product_count,
            "derived_unit_count": e.derived_unit_count,
        }), 409
    except Exception:
        current_app.logger.exception("Failed to delete unit")
        return jsonify({"error": "Internal server error"}), 500


@units_bp.post("/convert")
@require_auth
@require_permission("units", "view")
@require_store_access
def convert_route():
    """Request body: {"quantity": 2, "from_unit_id": 1, "to_unit_id": 2}"""
    data = request.get_json(silent=True) or {}
    quantity = data.get("quantity")
    from_unit_id = data.get("from_unit_id")
    to_unit_id = data.get("to_unit_id")

    if isinstance(quantity, bool) or not isinstance(quantity, (int, float)) or not math.isfinite(quantity):
        return jsonify({"error": "quantity must be a number"}), 400
    if not isinstance(from_unit_id, int) or not isinstance(to_unit_id, int):
        return jsonify({"error": "from_unit_id and to_unit_id must be integers"}), 400

    try:
        result = unit_service.convert(quantity, from_unit_id, to_unit_id, store_id=g.store_id)
    except UnitNotFoundError:
        return jsonify({"error": "Unit not found"}), 404
    except UnitConversionError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "quantity": quantity,
        "from_unit_id": from_unit_id,
        "to_unit_id": to_unit_id,
        "result": result,
    })
