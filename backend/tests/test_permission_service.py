"""
Permission resolution tests.

Verifies:
- Owner bypass and role defaults
- Custom and store-level overrides replace role defaults per module
- Store access rules (tenant-wide roles vs. assignments, PERM002)
- Fail-closed behavior and batch checks
- Cache invalidation through domain events
"""

import pytest

from retailpos.permissions import UserRole
from retailpos.services import user_service, user_store_access_service
from retailpos.services.auth_service import create_user
from retailpos.services.permission_service import (
    permission_service,
    PermissionService,
    PermissionDeniedError,
    UserPermissionContext,
    resolve_effective_permissions,
    PERMISSION_DENIED_CODE,
    STORE_ACCESS_DENIED_CODE,
)

from conftest import PASSWORD


# =============================================================================
# ROLE DEFAULTS
# =============================================================================


class TestRoleDefaults:

    def test_owner_bypasses_everything(self, db_session, owner):
        result = permission_service.check_permission(owner.id, "users", "delete", tenant_id=owner.org_id)
        assert result.allowed is True

    def test_owner_allowed_at_any_store(self, db_session, owner, store_a2):
        result = permission_service.check_permission(owner.id, "settings", "edit", store_id=store_a2.id)
        assert result.allowed is True

    def test_salesperson_can_view_products(self, db_session, salesperson):
        assert permission_service.check_permission(salesperson.id, "products", "view").allowed

    def test_salesperson_cannot_edit_products(self, db_session, salesperson):
        result = permission_service.check_permission(salesperson.id, "products", "edit")
        assert result.allowed is False
        assert result.error_code == PERMISSION_DENIED_CODE

    def test_module_missing_from_role_denied(self, db_session, salesperson):
        result = permission_service.check_permission(salesperson.id, "units", "view")
        assert result.allowed is False
        assert "units" in result.reason

    def test_custom_role_starts_empty(self, db_session, org_a):
        user = create_user(email="custom@acme.com", password=PASSWORD, org_id=org_a.id, role=UserRole.CUSTOM)
        assert permission_service.get_user_permissions(user.id) == {}


# =============================================================================
# OVERRIDES
# =============================================================================


class TestOverrides:

    def test_custom_entry_replaces_role_default(self, db_session, org_a):
        user = create_user(
            email="custom-sales@acme.com",
            password=PASSWORD,
            org_id=org_a.id,
            role=UserRole.SALESPERSON,
            permissions={"products": ["view", "edit"]},
        )
        assert permission_service.check_permission(user.id, "products", "edit").allowed
        # Untouched modules keep the role default
        assert permission_service.check_permission(user.id, "sales", "add").allowed

    def test_empty_custom_entry_keeps_role_default(self, db_session, org_a):
        user = create_user(
            email="empty-custom@acme.com",
            password=PASSWORD,
            org_id=org_a.id,
            role=UserRole.SALESPERSON,
            permissions={"products": []},
        )
        assert permission_service.check_permission(user.id, "products", "view").allowed

    def test_store_override_applies_only_at_that_store(self, db_session, salesperson, store_a, store_a2):
        user_store_access_service.assign_store(
            user_id=salesperson.id,
            store_id=store_a.id,
            permissions={"units": ["view", "add"]},
        )

        assert permission_service.check_permission(salesperson.id, "units", "add", store_id=store_a.id).allowed
        assert not permission_service.check_permission(salesperson.id, "units", "add").allowed
        assert not permission_service.check_permission(salesperson.id, "units", "add", store_id=store_a2.id).allowed

    def test_empty_store_override_revokes_module(self, db_session, salesperson, store_a):
        user_store_access_service.assign_store(
            user_id=salesperson.id,
            store_id=store_a.id,
            permissions={"products": []},
        )

        assert not permission_service.check_permission(salesperson.id, "products", "view", store_id=store_a.id).allowed
        assert permission_service.check_permission(salesperson.id, "products", "view").allowed

    def test_store_role_uses_that_roles_defaults(self, db_session, salesperson, store_a):
        user_store_access_service.assign_store(user_id=salesperson.id, store_id=store_a.id, role=UserRole.STORE_MANAGER)

        assert permission_service.check_permission(salesperson.id, "units", "edit", store_id=store_a.id).allowed
        assert not permission_service.check_permission(salesperson.id, "units", "edit").allowed

    def test_resolve_is_per_module_not_merge(self):
        context = UserPermissionContext(
            user_id=1,
            tenant_id=1,
            role=UserRole.STORE_MANAGER,
            custom_permissions={"products": ["view"]},
            store_permissions={7: {"sales": ["view"]}},
        )
        effective = resolve_effective_permissions(context, store_id=7)
        assert effective["products"] == ["view"]
        assert effective["sales"] == ["view"]
        # Other store_manager modules untouched
        assert effective["units"] == ["view", "add", "edit"]


# =============================================================================
# STORE ACCESS
# =============================================================================


class TestStoreAccess:

    def test_admin_reaches_every_store_in_tenant(self, db_session, admin, store_a, store_a2):
        assert permission_service.check_store_access(admin.id, store_a.id).allowed
        assert permission_service.check_store_access(admin.id, store_a2.id).allowed

    def test_assigned_user_reaches_assigned_store(self, db_session, salesperson, store_a):
        assert permission_service.check_store_access(salesperson.id, store_a.id).allowed

    def test_unassigned_store_denied(self, db_session, salesperson, store_a2):
        result = permission_service.check_store_access(salesperson.id, store_a2.id)
        assert result.allowed is False
        assert result.error_code == STORE_ACCESS_DENIED_CODE

    def test_cross_tenant_store_denied_even_for_admin(self, db_session, admin, store_b):
        result = permission_service.check_store_access(admin.id, store_b.id)
        assert result.allowed is False
        assert result.error_code == STORE_ACCESS_DENIED_CODE


# =============================================================================
# FAILURE MODES + BATCH
# =============================================================================


class TestFailClosed:

    def test_unknown_user_denied(self, db_session):
        result = permission_service.check_permission(999999, "products", "view")
        assert result.allowed is False
        assert result.error_code == PERMISSION_DENIED_CODE

    def test_inactive_user_denied(self, db_session, admin, salesperson):
        user_service.update_user(admin, salesperson.id, {"status": "inactive"})
        assert not permission_service.check_permission(salesperson.id, "products", "view").allowed

    def test_wrong_tenant_denied(self, db_session, salesperson, org_b):
        assert not permission_service.check_permission(
            salesperson.id, "products", "view", tenant_id=org_b.id
        ).allowed

    def test_lookup_error_denies(self, db_session, salesperson, monkeypatch):
        service = PermissionService(cache_enabled=False)

        def boom(*args, **kwargs):
            raise RuntimeError("db down")

        monkeypatch.setattr(service, "get_permission_context", boom)
        result = service.check_permission(salesperson.id, "products", "view")
        assert result.allowed is False
        assert result.reason == "Permission check failed"

    def test_require_permission_raises(self, db_session, salesperson):
        with pytest.raises(PermissionDeniedError) as exc:
            permission_service.require_permission(salesperson.id, "users", "delete")
        assert exc.value.error_code == PERMISSION_DENIED_CODE

    def test_batch_check_keys(self, db_session, salesperson, store_a):
        results = permission_service.check_multiple_permissions(
            salesperson.id,
            [
                {"module": "products", "action": "view"},
                {"module": "products", "action": "delete", "store_id": store_a.id},
            ],
        )
        assert results["products:view:all"].allowed is True
        assert results[f"products:delete:{store_a.id}"].allowed is False


# =============================================================================
# CACHE INVALIDATION
# =============================================================================


class TestCacheInvalidation:

    def test_second_check_hits_cache(self, db_session, salesperson):
        permission_service.check_permission(salesperson.id, "products", "view", tenant_id=salesperson.org_id)
        permission_service.check_permission(salesperson.id, "products", "view", tenant_id=salesperson.org_id)
        assert permission_service.get_cache_stats()["hits"] >= 1

    def test_user_update_invalidates(self, db_session, admin, salesperson):
        org_id = salesperson.org_id
        assert not permission_service.check_permission(salesperson.id, "products", "edit", tenant_id=org_id).allowed

        user_service.update_user(admin, salesperson.id, {"permissions": {"products": ["view", "edit"]}})

        assert permission_service.check_permission(salesperson.id, "products", "edit", tenant_id=org_id).allowed

    def test_role_change_invalidates(self, db_session, admin, salesperson):
        org_id = salesperson.org_id
        assert not permission_service.check_permission(salesperson.id, "units", "add", tenant_id=org_id).allowed

        user_service.update_user(admin, salesperson.id, {"role": UserRole.INVENTORY_MANAGER})

        assert permission_service.check_permission(salesperson.id, "units", "add", tenant_id=org_id).allowed

    def test_store_assignment_invalidates(self, db_session, salesperson, store_a):
        org_id = salesperson.org_id
        assert permission_service.check_permission(
            salesperson.id, "products", "view", store_id=store_a.id, tenant_id=org_id
        ).allowed

        user_store_access_service.assign_store(
            user_id=salesperson.id, store_id=store_a.id, permissions={"products": []}
        )

        assert not permission_service.check_permission(
            salesperson.id, "products", "view", store_id=store_a.id, tenant_id=org_id
        ).allowed

    def test_tenant_reset_clears_tenant_entries(self, db_session, salesperson, store_manager):
        org_id = salesperson.org_id
        permission_service.check_permission(salesperson.id, "products", "view", tenant_id=org_id)
        permission_service.check_permission(store_manager.id, "products", "view", tenant_id=org_id)
        assert permission_service.get_cache_stats()["size"] == 2

        user_service.reset_tenant_permissions(org_id)

        assert permission_service.get_cache_stats()["size"] == 0
