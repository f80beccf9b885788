# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission Evaluation with Multi-Tenant Support

WHY: Every route decides access from one place. A user's effective
permissions come from three layers, most specific first:

1. store override  (UserStoreAssignment.permissions / .role for the queried store)
2. custom override (User.permissions)
3. role default    (DEFAULT_ROLE_PERMISSIONS[User.role])

Resolution is per module: a more specific layer that names a module
replaces the less specific entry for that module, it never merges actions.

DESIGN PRINCIPLES:
- Fail closed: unknown users, malformed data and lookup errors deny
- Ordinary denial is a result (PERM001), not an exception
- The owner role bypasses all lookups
- Resolved contexts are cached per (tenant, user); writers invalidate the
  cache through domain events, see services/permission_cache.py
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import User, UserStoreAssignment, Store
from ..permissions import (
    ALL_ACTIONS,
    DEFAULT_ROLE_PERMISSIONS,
    TENANT_WIDE_ROLES,
    UserRole,
    get_all_module_codes,
    normalize_permission_map,
    validate_role,
)
from .permission_cache import PermissionCache, CachedPermissionContext

PERMISSION_DENIED_CODE = "PERM001"
STORE_ACCESS_DENIED_CODE = "PERM002"


class PermissionDeniedError(Exception):
    """Raised by require_permission when the user lacks a permission."""

    def __init__(self, message: str, error_code: str = PERMISSION_DENIED_CODE):
        super().__init__(message)
        self.error_code = error_code


@dataclass(frozen=True)
class PermissionCheckResult:
    allowed: bool
    reason: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict:
        data = {"allowed": self.allowed}
        if not self.allowed:
            data["reason"] = self.reason
            data["error_code"] = self.error_code
        return data


@dataclass
class UserPermissionContext:
    user_id: int
    tenant_id: int | None
    role: str
    custom_permissions: dict[str, list[str]] | None = None
    store_permissions: dict[int, dict[str, list[str]]] = field(default_factory=dict)


def _deny(reason: str, code: str = PERMISSION_DENIED_CODE) -> PermissionCheckResult:
    return PermissionCheckResult(allowed=False, reason=reason, error_code=code)


def _store_override_map(assignment: UserStoreAssignment) -> dict[str, list[str]]:
    """Permission map an assignment imposes on its store, {} when none."""
    explicit = normalize_permission_map(assignment.permissions)
    if explicit:
        return explicit
    if assignment.role and validate_role(assignment.role):
        return {m: list(a) for m, a in DEFAULT_ROLE_PERMISSIONS[assignment.role].items()}
    return {}


def resolve_effective_permissions(
    context: UserPermissionContext,
    store_id: int | None = None,
) -> dict[str, list[str]]:
    """
    Merge role default, custom and store layers into one {module: actions} map.

    Custom entries replace the role default only when non-empty. A store
    override replaces the entry for every module it names, including with
    an empty list (explicit revocation at that store).
    """
    if context.role == UserRole.OWNER:
        return {module: list(ALL_ACTIONS) for module in get_all_module_codes()}

    defaults = DEFAULT_ROLE_PERMISSIONS.get(context.role, {})
    effective = {module: list(actions) for module, actions in defaults.items()}

    for module, actions in (context.custom_permissions or {}).items():
        if actions:
            effective[module] = list(actions)

    if store_id is not None:
        store_perms = context.store_permissions.get(store_id)
        if store_perms:
            for module, actions in store_perms.items():
                effective[module] = list(actions)

    return effective


class PermissionService:
    """
    Centralized permission checking with an optional context cache.

    One process-wide instance (`permission_service` below) is configured by
    create_app(); tests may build their own with cache_enabled=False.
    """

    def __init__(self, *, cache_enabled: bool = True, cache_ttl_seconds: float = 300, cache_max_size: int = 10000):
        self.cache = PermissionCache(
            ttl_seconds=cache_ttl_seconds,
            max_size=cache_max_size,
            enabled=cache_enabled,
        )

    def init_app(self, app) -> None:
        self.cache.ttl_seconds = app.config.get("PERMISSION_CACHE_TTL_SECONDS", 300)
        self.cache.max_size = app.config.get("PERMISSION_CACHE_MAX_SIZE", 10000)
        self.cache.set_enabled(app.config.get("PERMISSION_CACHE_ENABLED", True))
        self.cache.connect_signals()
        app.extensions["permission_service"] = self

    # -- context loading ------------------------------------------------------

    def get_permission_context(self, user_id: int, tenant_id: int | None = None) -> UserPermissionContext | None:
        cached = self.cache.get(user_id, tenant_id)
        if cached is not None:
            return UserPermissionContext(
                user_id=cached.user_id,
                tenant_id=cached.tenant_id,
                role=cached.role,
                custom_permissions=cached.custom_permissions,
                store_permissions=cached.store_permissions,
            )

        context = self._load_permission_context(user_id, tenant_id)
        if context is not None:
            self.cache.set(
                user_id,
                CachedPermissionContext(
                    user_id=context.user_id,
                    tenant_id=context.tenant_id,
                    role=context.role,
                    custom_permissions=context.custom_permissions,
                    store_permissions=context.store_permissions,
                ),
                tenant_id,
            )
        return context

    def _load_permission_context(self, user_id: int, tenant_id: int | None) -> UserPermissionContext | None:
        query = db.session.query(User).filter(User.id == user_id, User.status == "active")
        if tenant_id is not None:
            query = query.filter(User.org_id == tenant_id)
        user = query.first()
        if user is None:
            return None

        store_permissions: dict[int, dict[str, list[str]]] = {}
        assignments = db.session.query(UserStoreAssignment).filter_by(user_id=user.id).all()
        for assignment in assignments:
            override = _store_override_map(assignment)
            if override:
                store_permissions[assignment.store_id] = override

        custom = normalize_permission_map(user.permissions) or None

        return UserPermissionContext(
            user_id=user.id,
            tenant_id=user.org_id,
            role=user.role,
            custom_permissions=custom,
            store_permissions=store_permissions,
        )

    # -- checks ---------------------------------------------------------------

    def check_permission(
        self,
        user_id: int,
        module: str,
        action: str,
        store_id: int | None = None,
        context: UserPermissionContext | None = None,
        tenant_id: int | None = None,
    ) -> PermissionCheckResult:
        """
        Check one (module, action) pair for a user, optionally at a store.

        Returns PermissionCheckResult; denial carries error_code PERM001.
        """
        try:
            perm_context = context or self.get_permission_context(user_id, tenant_id)
            if perm_context is None:
                return _deny("User not found")

            if perm_context.role == UserRole.OWNER:
                return PermissionCheckResult(allowed=True)

            effective = resolve_effective_permissions(perm_context, store_id)
            module_actions = effective.get(module) or []
            if not module_actions:
                return _deny(f"No access to module {module}")

            if action not in module_actions:
                return _deny(f"Not allowed to {action} in module {module}")

            return PermissionCheckResult(allowed=True)
        except Exception:
            current_app.logger.exception("Permission check failed for user_id=%s module=%s action=%s", user_id, module, action)
            return _deny("Permission check failed")

    def check_multiple_permissions(
        self,
        user_id: int,
        checks: list[dict],
        tenant_id: int | None = None,
    ) -> dict[str, PermissionCheckResult]:
        """
        Evaluate a batch of checks against a single resolved context.

        Each check is {"module", "action", "store_id"?}; results are keyed
        "module:action:scope" where scope is the store id or "all".
        """
        context = self.get_permission_context(user_id, tenant_id)
        results: dict[str, PermissionCheckResult] = {}

        for check in checks:
            module = check.get("module")
            action = check.get("action")
            store_id = check.get("store_id")
            scope = store_id if store_id is not None else "all"
            key = f"{module}:{action}:{scope}"
            if context is None:
                results[key] = _deny("User not found")
                continue
            results[key] = self.check_permission(user_id, module, action, store_id, context=context)

        return results

    def get_user_permissions(
        self,
        user_id: int,
        tenant_id: int | None = None,
        store_id: int | None = None,
    ) -> dict[str, list[str]]:
        """Effective {module: actions} map; {} for unknown or inactive users."""
        context = self.get_permission_context(user_id, tenant_id)
        if context is None:
            return {}
        return resolve_effective_permissions(context, store_id)

    def check_store_access(self, user_id: int, store_id: int, tenant_id: int | None = None) -> PermissionCheckResult:
        """
        Owner, admin and company_manager reach every store in their tenant;
        other roles need a UserStoreAssignment for the store.
        """
        user = db.session.query(User).filter(User.id == user_id, User.status == "active").first()
        if user is None or (tenant_id is not None and user.org_id != tenant_id):
            return _deny("User not found", STORE_ACCESS_DENIED_CODE)

        store = db.session.query(Store).filter_by(id=store_id, org_id=user.org_id).first()
        if store is None:
            return _deny("Store not found", STORE_ACCESS_DENIED_CODE)

        if user.role in TENANT_WIDE_ROLES:
            return PermissionCheckResult(allowed=True)

        assigned = db.session.query(UserStoreAssignment).filter_by(user_id=user_id, store_id=store_id).first()
        if assigned is None:
            return _deny("No access to this store", STORE_ACCESS_DENIED_CODE)

        return PermissionCheckResult(allowed=True)

    def require_permission(
        self,
        user_id: int,
        module: str,
        action: str,
        store_id: int | None = None,
        tenant_id: int | None = None,
    ) -> None:
        """Raise PermissionDeniedError unless the check passes."""
        result = self.check_permission(user_id, module, action, store_id, tenant_id=tenant_id)
        if not result.allowed:
            raise PermissionDeniedError(result.reason or "Permission denied", result.error_code or PERMISSION_DENIED_CODE)

    # -- cache passthrough ------------------------------------------------------

    def get_cache_stats(self) -> dict:
        return self.cache.get_stats()

    def clear_cache(self) -> None:
        self.cache.clear()


permission_service = PermissionService()
