from __future__ import annotations

from ..events import store_permissions_changed
from ..extensions import db
from ..models import User, Store, UserStoreAssignment
from ..permissions import validate_permission_map, validate_role
from ..validation import ValidationError


def list_assignments(user_id: int) -> list[UserStoreAssignment]:
    return (
        db.session.query(UserStoreAssignment)
        .filter_by(user_id=user_id)
        .order_by(UserStoreAssignment.store_id.asc())
        .all()
    )


def assign_store(
    *,
    user_id: int,
    store_id: int,
    role: str | None = None,
    permissions: dict | None = None,
) -> UserStoreAssignment:
    """
    Create or replace a user's assignment to a store.

    role and permissions are store-scoped overrides; both optional.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")

    store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        raise ValueError("Store not found")

    if user.org_id != store.org_id:
        raise ValueError("Store does not belong to user's organization")

    if role is not None and not validate_role(role):
        raise ValidationError(f"Invalid role: {role}")

    if permissions is not None:
        try:
            permissions = validate_permission_map(permissions)
        except ValueError as exc:
            raise ValidationError(str(exc))

    assignment = db.session.query(UserStoreAssignment).filter_by(user_id=user_id, store_id=store_id).first()
    if assignment is None:
        assignment = UserStoreAssignment(user_id=user_id, store_id=store_id)
        db.session.add(assignment)

    assignment.role = role
    assignment.permissions = permissions
    db.session.commit()

    store_permissions_changed.send(user.org_id, store_id=store_id, user_id=user_id)
    return assignment


def set_user_stores(*, user_id: int, assignments: list[dict]) -> list[UserStoreAssignment]:
    """
    Replace the full set of store assignments for a user.

    Each entry: {"store_id", "role"?, "permissions"?}. Stores missing from
    the list lose their assignment.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")

    wanted = {}
    for entry in assignments:
        if not isinstance(entry, dict) or "store_id" not in entry:
            raise ValidationError("Each assignment needs a store_id")
        wanted[int(entry["store_id"])] = entry

    for existing in list_assignments(user_id):
        if existing.store_id not in wanted:
            revoke_store(user_id=user_id, store_id=existing.store_id)

    return [
        assign_store(
            user_id=user_id,
            store_id=store_id,
            role=entry.get("role"),
            permissions=entry.get("permissions"),
        )
        for store_id, entry in wanted.items()
    ]


def revoke_store(*, user_id: int, store_id: int) -> bool:
    assignment = db.session.query(UserStoreAssignment).filter_by(user_id=user_id, store_id=store_id).first()
    if not assignment:
        return False

    org_id = assignment.store.org_id
    db.session.delete(assignment)
    db.session.commit()

    store_permissions_changed.send(org_id, store_id=store_id, user_id=user_id)
    return True
