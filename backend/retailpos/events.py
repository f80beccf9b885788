# Overview: Domain signals emitted after permission-relevant writes.

"""
Permission-relevant domain events.

Services that write users, roles or store assignments send one of these
signals after their commit. Subscribers (the permission cache) connect
themselves; the writers never call cache methods directly.

All signals are sent with the tenant (org_id) as sender and keyword data:

- user_permissions_changed: user_id
- store_permissions_changed: store_id, user_id (optional)
- role_permissions_changed: role (sent when a role's users are reset to the role defaults)
- tenant_permissions_changed: no extra data
"""

from blinker import Namespace

_signals = Namespace()

user_permissions_changed = _signals.signal("user-permissions-changed")
store_permissions_changed = _signals.signal("store-permissions-changed")
role_permissions_changed = _signals.signal("role-permissions-changed")
tenant_permissions_changed = _signals.signal("tenant-permissions-changed")
