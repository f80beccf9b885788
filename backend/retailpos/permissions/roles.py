# Overview: Role names, role hierarchy and default permission maps per role.

from .categories import ALL_ACTIONS
from .definitions import MODULE_DEFINITIONS, REPORT_MODULES


class UserRole:
    OWNER = "owner"
    ADMIN = "admin"
    COMPANY_MANAGER = "company_manager"
    STORE_MANAGER = "store_manager"
    SALESPERSON = "salesperson"
    ACCOUNTANT = "accountant"
    INVENTORY_MANAGER = "inventory_manager"
    CUSTOM = "custom"


ALL_ROLES = (
    UserRole.OWNER,
    UserRole.ADMIN,
    UserRole.COMPANY_MANAGER,
    UserRole.STORE_MANAGER,
    UserRole.SALESPERSON,
    UserRole.ACCOUNTANT,
    UserRole.INVENTORY_MANAGER,
    UserRole.CUSTOM,
)

# Higher number = more authority. Roles on the same level cannot manage each other.
ROLE_HIERARCHY = {
    UserRole.OWNER: 100,
    UserRole.ADMIN: 90,
    UserRole.COMPANY_MANAGER: 80,
    UserRole.STORE_MANAGER: 60,
    UserRole.ACCOUNTANT: 40,
    UserRole.INVENTORY_MANAGER: 40,
    UserRole.SALESPERSON: 20,
    UserRole.CUSTOM: 10,
}

# Roles that reach every store of their tenant without a store assignment
TENANT_WIDE_ROLES = {UserRole.OWNER, UserRole.ADMIN, UserRole.COMPANY_MANAGER}

_FULL = list(ALL_ACTIONS)
_VIEW = ["view"]
_ALL_REPORTS = {code: _VIEW for code, _, _, _ in REPORT_MODULES}


DEFAULT_ROLE_PERMISSIONS = {
    # Owner bypasses lookups entirely; the map is kept for display.
    UserRole.OWNER: {code: _FULL for code, _, _, _ in MODULE_DEFINITIONS},

    UserRole.ADMIN: {
        **_ALL_REPORTS,
        "stores": _FULL,
        "users": _FULL,
        "products": _FULL,
        "categories": _FULL,
        "units": _FULL,
        "sales": _FULL,
        "online-orders": _FULL,
        "purchases": _FULL,
        "customers": _FULL,
        "suppliers": _FULL,
        "cash-flow": _FULL,
        "settings": ["view", "edit"],
        "pos": ["view", "add"],
    },

    UserRole.COMPANY_MANAGER: {
        **_ALL_REPORTS,
        "stores": ["view", "edit"],
        "users": _VIEW,
        "products": _FULL,
        "categories": _FULL,
        "units": _FULL,
        "sales": ["view", "add", "edit"],
        "online-orders": ["view", "add", "edit"],
        "purchases": ["view", "add", "edit"],
        "customers": ["view", "add", "edit"],
        "suppliers": ["view", "add", "edit"],
        "cash-flow": ["view", "add", "edit"],
        "settings": _VIEW,
        "pos": ["view", "add"],
    },

    UserRole.STORE_MANAGER: {
        "dashboard": _VIEW,
        "products": ["view", "add", "edit"],
        "categories": ["view", "add", "edit"],
        "units": ["view", "add", "edit"],
        "sales": ["view", "add", "edit"],
        "online-orders": ["view", "edit"],
        "purchases": ["view", "add", "edit"],
        "customers": ["view", "add", "edit"],
        "suppliers": ["view", "add"],
        "cash-flow": ["view", "add"],
        "reports_shifts": _VIEW,
        "reports_profit": _VIEW,
        "reports_debt": _VIEW,
        "reports_transactions": _VIEW,
        "reports_revenue": _VIEW,
        "reports_sold_products": _VIEW,
        "reports_inventory": _VIEW,
        "pos": ["view", "add"],
    },

    UserRole.SALESPERSON: {
        "dashboard": _VIEW,
        "products": _VIEW,
        "sales": ["view", "add"],
        "online-orders": _VIEW,
        "customers": ["view", "add"],
        "pos": ["view", "add"],
    },

    UserRole.ACCOUNTANT: {
        "dashboard": _VIEW,
        "sales": _VIEW,
        "online-orders": _VIEW,
        "purchases": _VIEW,
        "customers": _VIEW,
        "suppliers": _VIEW,
        "cash-flow": ["view", "add", "edit"],
        "reports_shifts": _VIEW,
        "reports_income_statement": _VIEW,
        "reports_profit": _VIEW,
        "reports_debt": _VIEW,
        "reports_supplier_debt": _VIEW,
        "reports_transactions": _VIEW,
        "reports_revenue": _VIEW,
    },

    UserRole.INVENTORY_MANAGER: {
        "dashboard": _VIEW,
        "products": _FULL,
        "categories": _FULL,
        "units": _FULL,
        "purchases": ["view", "add", "edit"],
        "suppliers": ["view", "add", "edit"],
        "online-orders": _VIEW,
        "reports_inventory": _VIEW,
        "reports_sold_products": _VIEW,
    },

    # Custom users start from nothing and rely on their own permission map.
    UserRole.CUSTOM: {},
}
