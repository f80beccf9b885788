# Overview: Flask API routes for permission lookups; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..permissions import MODULE_DEFINITIONS, ALL_ACTIONS, ALL_ROLES, DEFAULT_ROLE_PERMISSIONS
from ..services.permission_service import permission_service
from ..decorators import require_auth, require_permission

permissions_bp = Blueprint("permissions", __name__, url_prefix="/api/permissions")

MAX_BATCH_CHECKS = 100


@permissions_bp.get("/me")
@require_auth
def my_permissions_route():
    """Effective {module: actions} for the current user, at X-Store-Id when given."""
    user = g.current_user
    return jsonify({
        "user_id": user.id,
        "role": user.role,
        "store_id": g.store_id,
        "permissions": permission_service.get_user_permissions(user.id, tenant_id=g.org_id, store_id=g.store_id),
    })


@permissions_bp.post("/check")
@require_auth
def check_permissions_route():
    """
    Batch check for the current user.

    Request body: {"checks": [{"module": "products", "action": "edit", "store_id": 1?}, ...]}
    Response keys are "module:action:scope" (scope = store id or "all").
    """
    data = request.get_json(silent=True) or {}
    checks = data.get("checks")
    if not isinstance(checks, list) or not checks:
        return jsonify({"error": "checks must be a non-empty list"}), 400
    if len(checks) > MAX_BATCH_CHECKS:
        return jsonify({"error": f"At most {MAX_BATCH_CHECKS} checks per request"}), 400
    for check in checks:
        if not isinstance(check, dict) or not check.get("module") or not check.get("action"):
            return jsonify({"error": "Each check needs module and action"}), 400

    results = permission_service.check_multiple_permissions(g.current_user.id, checks, tenant_id=g.org_id)
    return jsonify({"results": {key: result.to_dict() for key, result in results.items()}})


@permissions_bp.get("/modules")
@require_auth
def list_modules_route():
    return jsonify({
        "modules": [
            {"code": code, "name": name, "description": desc, "group": group}
            for code, name, desc, group in MODULE_DEFINITIONS
        ],
        "actions": list(ALL_ACTIONS),
    })


@permissions_bp.get("/roles")
@require_auth
@require_permission("users", "view")
def list_roles_route():
    return jsonify({
        "roles": [{"role": role, "permissions": DEFAULT_ROLE_PERMISSIONS.get(role, {})} for role in ALL_ROLES],
    })


@permissions_bp.get("/cache-stats")
@require_auth
@require_permission("settings", "view")
def cache_stats_route():
    return jsonify(permission_service.get_cache_stats())
