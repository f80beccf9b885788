# Overview: Permission action and module-group constants.


class PermissionAction:
    """Actions a permission map can grant on a module."""
    VIEW = "view"
    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"


ALL_ACTIONS = (
    PermissionAction.VIEW,
    PermissionAction.ADD,
    PermissionAction.EDIT,
    PermissionAction.DELETE,
)


class ModuleGroup:
    """Module groups for organization and UI display."""
    CATALOG = "CATALOG"
    SALES = "SALES"
    PARTNERS = "PARTNERS"
    FINANCE = "FINANCE"
    REPORTS = "REPORTS"
    ADMINISTRATION = "ADMINISTRATION"
