# Overview: Utility functions for permission lookups and validation.

from __future__ import annotations

import json
from typing import Any

from .categories import ALL_ACTIONS
from .definitions import MODULE_DEFINITIONS
from .roles import ALL_ROLES, ROLE_HIERARCHY


def get_all_module_codes() -> list[str]:
    """Get list of all module codes."""
    return [module[0] for module in MODULE_DEFINITIONS]


def get_modules_by_group(group):
    """Get all modules in a group."""
    return [module for module in MODULE_DEFINITIONS if module[3] == group]


def get_module_definition(code):
    """Get full definition for a module code."""
    for module in MODULE_DEFINITIONS:
        if module[0] == code:
            return {
                "code": module[0],
                "name": module[1],
                "description": module[2],
                "group": module[3],
            }
    return None


def validate_module_code(code) -> bool:
    return code in get_all_module_codes()


def validate_action(action) -> bool:
    return action in ALL_ACTIONS


def validate_role(role) -> bool:
    return role in ALL_ROLES


def normalize_permission_map(raw: Any) -> dict[str, list[str]]:
    """
    Coerce stored permission data into {module: [action, ...]}.

    Accepts a dict or a JSON string. Anything malformed collapses to "no
    permissions" for the affected entry: non-dict payloads give {}, non-list
    action values are dropped, unknown actions are filtered out.
    """
    if raw is None:
        return {}
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (TypeError, ValueError):
            return {}
    if not isinstance(raw, dict):
        return {}

    normalized: dict[str, list[str]] = {}
    for module, actions in raw.items():
        if not isinstance(module, str) or not isinstance(actions, (list, tuple)):
            continue
        cleaned = [a for a in actions if isinstance(a, str) and a in ALL_ACTIONS]
        # Keep order, drop duplicates
        normalized[module] = list(dict.fromkeys(cleaned))
    return normalized


def validate_permission_map(raw: Any) -> dict[str, list[str]]:
    """
    Strict variant used on write paths: raises ValueError on anything that
    normalize_permission_map would silently drop.
    """
    if not isinstance(raw, dict):
        raise ValueError("permissions must be an object of module -> actions")
    for module, actions in raw.items():
        if not validate_module_code(module):
            raise ValueError(f"Unknown module: {module}")
        if not isinstance(actions, list):
            raise ValueError(f"Actions for {module} must be a list")
        for action in actions:
            if not validate_action(action):
                raise ValueError(f"Unknown action '{action}' for module {module}")
    return normalize_permission_map(raw)


def can_manage_user(manager_role: str, target_role: str) -> bool:
    """A user can manage another only if their role ranks strictly higher."""
    return ROLE_HIERARCHY.get(manager_role, 0) > ROLE_HIERARCHY.get(target_role, 0)


def get_assignable_roles(role: str) -> list[str]:
    level = ROLE_HIERARCHY.get(role, 0)
    return [r for r in ALL_ROLES if ROLE_HIERARCHY[r] < level]
