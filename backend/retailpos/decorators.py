# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service
from .services.permission_service import (
    permission_service,
    PERMISSION_DENIED_CODE,
    STORE_ACCESS_DENIED_CODE,
)


STORE_HEADER = "X-Store-Id"


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'org_id')


def _store_id_from_header() -> tuple[int | None, bool]:
    """(store_id, valid). A missing header is valid and gives None."""
    raw = request.headers.get(STORE_HEADER)
    if raw is None or raw.strip() == "":
        return None, True
    try:
        return int(raw), True
    except ValueError:
        return None, False


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.org_id: The organization ID (tenant context)
    - g.store_id: Store scope from the X-Store-Id header (None if absent)
    - g.session_context: The full SessionContext object

    Returns 401 if the Authorization header is missing, or the token is
    invalid, expired or revoked. Returns 400 for a non-integer X-Store-Id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        store_id, valid = _store_id_from_header()
        if not valid:
            return jsonify({"error": f"{STORE_HEADER} must be an integer"}), 400

        g.current_user = context.user
        g.org_id = context.org_id
        g.store_id = store_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_permission(module: str, action: str):
    """
    Require (module, action), evaluated at the X-Store-Id store when given.

    Denial: 403 {"error", "code": "PERM001"}.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            result = permission_service.check_permission(
                user.id,
                module,
                action,
                store_id=g.store_id,
                tenant_id=g.org_id,
            )

            if not result.allowed:
                current_app.logger.info(
                    "Permission denied: user_id=%s module=%s action=%s store_id=%s path=%s",
                    user.id, module, action, g.store_id, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "code": result.error_code or PERMISSION_DENIED_CODE,
                    "message": result.reason,
                    "required_permission": f"{module}:{action}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_store_access(f):
    """
    Require an X-Store-Id the user may operate in.

    Returns 400 if the header is missing, 403 with code PERM002 if the store
    is outside the tenant or the user has no assignment there.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401

        if g.store_id is None:
            return jsonify({"error": f"{STORE_HEADER} header is required"}), 400

        result = permission_service.check_store_access(g.current_user.id, g.store_id, tenant_id=g.org_id)
        if not result.allowed:
            return jsonify({
                "error": "No access to this store",
                "code": result.error_code or STORE_ACCESS_DENIED_CODE,
                "message": result.reason,
            }), 403

        return f(*args, **kwargs)

    return decorated_function
