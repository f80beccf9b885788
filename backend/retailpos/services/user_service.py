# Overview: Service-layer operations for user administration; emits permission events after writes.

"""
User Administration Service

Creates, edits and deletes users within one organization. Every write
that can change a user's effective permissions sends the matching signal
from retailpos.events after commit, so cached permission contexts are
dropped without this module knowing the cache exists.

Role management follows ROLE_HIERARCHY: an actor may only create, edit or
delete users whose role ranks strictly below its own, and may only hand
out such roles. The owner may manage everyone except other owners.
"""

from __future__ import annotations

from flask import current_app

from ..events import user_permissions_changed, role_permissions_changed, tenant_permissions_changed
from ..extensions import db
from ..models import User
from ..permissions import (
    can_manage_user,
    validate_permission_map,
    validate_role,
)
from ..validation import ValidationError, ConflictError
from . import auth_service, session_service

USER_STATUSES = ("active", "inactive")


class UserNotFoundError(Exception):
    pass


class RoleManagementError(Exception):
    """Actor may not manage the target user or assign the requested role."""
    pass


def _get_user(org_id: int, user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id, org_id=org_id).first()
    if not user:
        raise UserNotFoundError("User not found")
    return user


def _check_role(role) -> str:
    if not validate_role(role):
        raise ValidationError(f"Invalid role: {role}")
    return role


def _check_permissions(raw) -> dict | None:
    if raw is None:
        return None
    try:
        return validate_permission_map(raw)
    except ValueError as exc:
        raise ValidationError(str(exc))


def list_users(org_id: int, *, status: str | None = None, role: str | None = None) -> list[User]:
    query = db.session.query(User).filter_by(org_id=org_id)
    if status:
        query = query.filter(User.status == status)
    if role:
        query = query.filter(User.role == role)
    return query.order_by(User.email.asc()).all()


def get_user(org_id: int, user_id: int) -> User:
    return _get_user(org_id, user_id)


def create_user(actor: User, payload: dict) -> User:
    """
    Create a user in the actor's organization.

    Raises ValidationError, ConflictError (email taken), RoleManagementError,
    or auth_service.PasswordValidationError.
    """
    email = (payload.get("email") or "").strip()
    password = payload.get("password") or ""
    if not email:
        raise ValidationError("email is required")
    if not password:
        raise ValidationError("password is required")

    role = _check_role(payload.get("role") or "salesperson")
    if not can_manage_user(actor.role, role):
        raise RoleManagementError(f"Cannot assign role {role}")

    permissions = _check_permissions(payload.get("permissions"))

    try:
        user = auth_service.create_user(
            email=email,
            password=password,
            org_id=actor.org_id,
            role=role,
            display_name=payload.get("display_name"),
            permissions=permissions,
        )
    except auth_service.PasswordValidationError:
        raise
    except ValueError as exc:
        if "already exists" in str(exc):
            raise ConflictError(str(exc))
        raise ValidationError(str(exc))

    current_app.logger.info("User created: user_id=%s org_id=%s role=%s", user.id, user.org_id, role)
    return user


def update_user(actor: User, user_id: int, payload: dict) -> User:
    """
    Edit display name, role, custom permissions, status or password.

    A role, permission or status change emits user_permissions_changed.
    Deactivation also revokes the user's sessions.
    """
    user = _get_user(actor.org_id, user_id)

    if user.id != actor.id and not can_manage_user(actor.role, user.role):
        raise RoleManagementError("Cannot manage this user")

    permissions_changed = False

    if "display_name" in payload:
        user.display_name = payload["display_name"]

    if "role" in payload and payload["role"] != user.role:
        role = _check_role(payload["role"])
        if user.id == actor.id:
            raise RoleManagementError("Cannot change your own role")
        if not can_manage_user(actor.role, role):
            raise RoleManagementError(f"Cannot assign role {role}")
        user.role = role
        permissions_changed = True

    if "permissions" in payload:
        if user.id == actor.id:
            raise RoleManagementError("Cannot change your own permissions")
        user.permissions = _check_permissions(payload["permissions"])
        permissions_changed = True

    deactivated = False
    if "status" in payload and payload["status"] != user.status:
        if payload["status"] not in USER_STATUSES:
            raise ValidationError(f"Invalid status: {payload['status']}")
        if user.id == actor.id:
            raise RoleManagementError("Cannot change your own status")
        user.status = payload["status"]
        deactivated = user.status == "inactive"
        permissions_changed = True

    if payload.get("password"):
        user.password_hash = auth_service.hash_password(payload["password"])

    db.session.commit()

    if deactivated:
        session_service.revoke_all_user_sessions(user.id, reason="User deactivated")

    if permissions_changed:
        user_permissions_changed.send(user.org_id, user_id=user.id)

    return user


def delete_user(actor: User, user_id: int) -> None:
    """
    Hard delete: store assignments and sessions go with the user.
    """
    user = _get_user(actor.org_id, user_id)
    if user.id == actor.id:
        raise RoleManagementError("Cannot delete yourself")
    if not can_manage_user(actor.role, user.role):
        raise RoleManagementError("Cannot manage this user")

    org_id = user.org_id
    db.session.delete(user)
    db.session.commit()

    current_app.logger.info("User deleted: user_id=%s org_id=%s", user_id, org_id)
    user_permissions_changed.send(org_id, user_id=user_id)


def reset_role_permissions(actor: User, role: str) -> int:
    """
    Restore the role defaults for every user of role in the actor's tenant.

    Clears each user's custom permission map. Store overrides are left
    alone. Emits role_permissions_changed once. Returns the number of
    users whose custom permissions were cleared.
    """
    role = _check_role(role)
    if not can_manage_user(actor.role, role):
        raise RoleManagementError(f"Cannot manage role {role}")

    users = [
        u for u in db.session.query(User).filter_by(org_id=actor.org_id, role=role).all()
        if u.permissions
    ]
    for user in users:
        user.permissions = None
    db.session.commit()

    current_app.logger.info("Role permissions reset: org_id=%s role=%s users=%s", actor.org_id, role, len(users))
    role_permissions_changed.send(actor.org_id, role=role)
    return len(users)


def reset_tenant_permissions(org_id: int) -> None:
    """Drop every cached permission context of the tenant."""
    tenant_permissions_changed.send(org_id)
