# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User administration routes.

- User management (list, get, create, update, delete)
- Store assignments with per-store role/permission overrides
- Assignable roles for the current user
- Restoring role defaults for every user of a role

All endpoints require authentication and the "users" module permission.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..permissions import get_assignable_roles
from ..services import user_service, user_store_access_service
from ..services.auth_service import PasswordValidationError
from ..services.permission_service import permission_service
from ..services.user_service import UserNotFoundError, RoleManagementError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_permission

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _user_payload(user, *, include_permissions: bool = False) -> dict:
    data = user.to_dict()
    data["stores"] = [a.to_dict() for a in user_store_access_service.list_assignments(user.id)]
    if include_permissions:
        data["effective_permissions"] = permission_service.get_user_permissions(user.id, tenant_id=user.org_id)
    return data


@users_bp.get("")
@require_auth
@require_permission("users", "view")
def list_users_route():
    """
    Query params:
    - status: active | inactive
    - role: role code
    """
    users = user_service.list_users(
        g.org_id,
        status=request.args.get("status"),
        role=request.args.get("role"),
    )
    return jsonify({"users": [_user_payload(u) for u in users], "count": len(users)})


@users_bp.get("/assignable-roles")
@require_auth
def assignable_roles_route():
    return jsonify({"roles": get_assignable_roles(g.current_user.role)})


@users_bp.get("/<int:user_id>")
@require_auth
@require_permission("users", "view")
def get_user_route(user_id: int):
    try:
        user = user_service.get_user(g.org_id, user_id)
    except UserNotFoundError:
        return jsonify({"error": "User not found"}), 404
    return jsonify({"user": _user_payload(user, include_permissions=True)})


@users_bp.post("")
@require_auth
@require_permission("users", "add")
def create_user_route():
    """
    Request body:
    - email, password (required)
    - display_name, role, permissions (optional)
    """
    try:
        user = user_service.create_user(g.current_user, request.get_json(silent=True) or {})
        return jsonify({"user": _user_payload(user)}), 201
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except RoleManagementError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("users", "edit")
def update_user_route(user_id: int):
    try:
        user = user_service.update_user(g.current_user, user_id, request.get_json(silent=True) or {})
        return jsonify({"user": _user_payload(user)})
    except UserNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except RoleManagementError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/roles/<role>/reset-permissions")
@require_auth
@require_permission("users", "edit")
def reset_role_permissions_route(role: str):
    """Drop custom permission maps of every user with this role."""
    try:
        count = user_service.reset_role_permissions(g.current_user, role)
        return jsonify({"role": role, "users_reset": count})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RoleManagementError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to reset role permissions")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_permission("users", "delete")
def delete_user_route(user_id: int):
    try:
        user_service.delete_user(g.current_user, user_id)
        return jsonify({"message": "User deleted"})
    except UserNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except RoleManagementError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>/stores")
@require_auth
@require_permission("users", "edit")
def set_user_stores_route(user_id: int):
    """
    Replace the user's store assignments.

    Request body: {"stores": [{"store_id": 1, "role": "store_manager"?, "permissions": {...}?}, ...]}
    """
    try:
        user = user_service.get_user(g.org_id, user_id)
        data = request.get_json(silent=True) or {}
        stores = data.get("stores")
        if not isinstance(stores, list):
            return jsonify({"error": "stores must be a list"}), 400

        assignments = user_store_access_service.set_user_stores(user_id=user.id, assignments=stores)
        return jsonify({"stores": [a.to_dict() for a in assignments]})
    except UserNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        # Store missing or in another organization
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to assign stores")
        return jsonify({"error": "Internal server error"}), 500
