# Overview: Permission system package.
# Re-exports all public APIs for module/action/role lookups.

from .categories import PermissionAction, ModuleGroup, ALL_ACTIONS
from .definitions import (
    MODULE_DEFINITIONS,
    CATALOG_MODULES,
    SALES_MODULES,
    PARTNER_MODULES,
    FINANCE_MODULES,
    REPORT_MODULES,
    ADMINISTRATION_MODULES,
)
from .roles import (
    UserRole,
    ALL_ROLES,
    ROLE_HIERARCHY,
    TENANT_WIDE_ROLES,
    DEFAULT_ROLE_PERMISSIONS,
)
from .helpers import (
    get_all_module_codes,
    get_modules_by_group,
    get_module_definition,
    validate_module_code,
    validate_action,
    validate_role,
    normalize_permission_map,
    validate_permission_map,
    can_manage_user,
    get_assignable_roles,
)

__all__ = [
    "PermissionAction",
    "ModuleGroup",
    "ALL_ACTIONS",
    "MODULE_DEFINITIONS",
    "CATALOG_MODULES",
    "SALES_MODULES",
    "PARTNER_MODULES",
    "FINANCE_MODULES",
    "REPORT_MODULES",
    "ADMINISTRATION_MODULES",
    "UserRole",
    "ALL_ROLES",
    "ROLE_HIERARCHY",
    "TENANT_WIDE_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_module_codes",
    "get_modules_by_group",
    "get_module_definition",
    "validate_module_code",
    "validate_action",
    "validate_role",
    "normalize_permission_map",
    "validate_permission_map",
    "can_manage_user",
    "get_assignable_roles",
]
