"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant validation logic for reuse across services and routes.
Every request is scoped to a tenant (organization), and cross-tenant
access must be explicitly denied.

SECURITY INVARIANTS:
1. Every authenticated request has g.org_id set
2. Store and online store IDs from client input are validated against g.org_id
3. Cross-tenant access attempts are logged

USAGE:
    from retailpos.services.tenant_service import require_store_in_org

    store = require_store_in_org(store_id, g.org_id)
"""

from flask import current_app, g, has_request_context, request

from ..extensions import db
from ..models import Store, OnlineStore


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""
    pass


def require_store_in_org(store_id: int, org_id: int) -> Store:
    """
    Validate that a store belongs to the specified organization.

    Raises TenantAccessError if the store doesn't exist or belongs to a
    different org. Both cases read "Store not found" so a probe cannot
    learn that the id exists elsewhere.
    """
    store = db.session.query(Store).filter_by(id=store_id).first()

    if not store:
        _log_cross_tenant_attempt(f"Store {store_id} not found", org_id=org_id)
        raise TenantAccessError("Store not found")

    if store.org_id != org_id:
        _log_cross_tenant_attempt(
            f"Store {store_id} belongs to org {store.org_id}, not {org_id}",
            org_id=org_id,
        )
        raise TenantAccessError("Store not found")

    return store


def require_online_store_in_org(online_store_id: int, org_id: int) -> OnlineStore:
    """Same check as require_store_in_org for an online store."""
    online_store = db.session.query(OnlineStore).filter_by(id=online_store_id).first()
    if not online_store or online_store.store.org_id != org_id:
        _log_cross_tenant_attempt(f"Online store {online_store_id} outside org", org_id=org_id)
        raise TenantAccessError("Online store not found")
    return online_store


def get_org_store_ids(org_id: int) -> set[int]:
    stores = db.session.query(Store.id).filter_by(org_id=org_id).all()
    return {s.id for s in stores}


def _log_cross_tenant_attempt(reason: str, org_id: int | None = None) -> None:
    user = getattr(g, "current_user", None)
    path = request.path if has_request_context() else None
    current_app.logger.warning(
        "Cross-tenant access denied: %s (org_id=%s user_id=%s path=%s)",
        reason,
        org_id,
        getattr(user, "id", None),
        path,
    )
