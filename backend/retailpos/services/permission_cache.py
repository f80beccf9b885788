# Overview: In-process TTL cache for resolved permission contexts.

"""
Permission Cache

Caches the resolved permission context of a user per tenant so a request
does not reload the user row and store assignments for every check.

DESIGN:
- Keys are "<tenant_id>:<user_id>" (tenant "default" when unknown)
- Entries expire after ttl_seconds; the oldest entry is evicted at max_size
- Invalidation hooks: per user, tenant, role, store, and a full clear
- Not distributed: each process holds its own copy. Coherence across
  instances is bounded by the TTL.

The cache subscribes to the domain signals in retailpos.events via
connect_signals(); writers emit events and never call the cache directly.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from .. import events


@dataclass
class CachedPermissionContext:
    user_id: int
    tenant_id: int | None
    role: str
    custom_permissions: dict[str, list[str]] | None = None
    store_permissions: dict[int, dict[str, list[str]]] = field(default_factory=dict)


@dataclass
class _CacheEntry:
    value: CachedPermissionContext
    cached_at: float


class PermissionCache:
    """Tenant-aware TTL cache with hit/miss statistics."""

    def __init__(
        self,
        *,
        ttl_seconds: float = 300,
        max_size: int = 10000,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.enabled = enabled
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(user_id: int, tenant_id: int | None) -> str:
        return f"{tenant_id if tenant_id is not None else 'default'}:{user_id}"

    def _is_expired(self, entry: _CacheEntry) -> bool:
        return self._clock() - entry.cached_at > self.ttl_seconds

    def get(self, user_id: int, tenant_id: int | None = None) -> CachedPermissionContext | None:
        if not self.enabled:
            return None

        key = self._key(user_id, tenant_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self._is_expired(entry):
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def set(self, user_id: int, context: CachedPermissionContext, tenant_id: int | None = None) -> None:
        if not self.enabled:
            return

        key = self._key(user_id, tenant_id)
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._evict_oldest()
            self._entries[key] = _CacheEntry(value=context, cached_at=self._clock())

    def _evict_oldest(self) -> None:
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k].cached_at)
        del self._entries[oldest_key]

    def _delete_where(self, predicate: Callable[[str, _CacheEntry], bool]) -> int:
        with self._lock:
            doomed = [k for k, entry in self._entries.items() if predicate(k, entry)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    # -- invalidation -------------------------------------------------------

    def invalidate_user(self, user_id: int, tenant_id: int | None = None) -> int:
        if tenant_id is None:
            # Tenant unknown: drop the user under every tenant
            suffix = f":{user_id}"
            return self._delete_where(lambda k, _e: k.endswith(suffix))
        key = self._key(user_id, tenant_id)
        with self._lock:
            return 1 if self._entries.pop(key, None) is not None else 0

    def invalidate_tenant(self, tenant_id: int) -> int:
        prefix = f"{tenant_id}:"
        return self._delete_where(lambda k, _e: k.startswith(prefix))

    def invalidate_role(self, role: str, tenant_id: int | None = None) -> int:
        def _match(_k: str, entry: _CacheEntry) -> bool:
            if tenant_id is not None and entry.value.tenant_id != tenant_id:
                return False
            return entry.value.role == role
        return self._delete_where(_match)

    def invalidate_store(self, store_id: int, tenant_id: int | None = None) -> int:
        def _match(_k: str, entry: _CacheEntry) -> bool:
            if tenant_id is not None and entry.value.tenant_id != tenant_id:
                return False
            return store_id in entry.value.store_permissions
        return self._delete_where(_match)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if not enabled:
            self.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict:
        total = self.hits + self.misses
        return {
            "size": len(self._entries),
            "enabled": self.enabled,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": (self.hits / total) if total else 0.0,
        }

    def reset_stats(self) -> None:
        self.hits = 0
        self.misses = 0

    # -- signal wiring --------------------------------------------------------

    def connect_signals(self) -> None:
        """Subscribe to the permission domain events."""
        events.user_permissions_changed.connect(self._on_user_changed, weak=False)
        events.store_permissions_changed.connect(self._on_store_changed, weak=False)
        events.role_permissions_changed.connect(self._on_role_changed, weak=False)
        events.tenant_permissions_changed.connect(self._on_tenant_changed, weak=False)

    def disconnect_signals(self) -> None:
        events.user_permissions_changed.disconnect(self._on_user_changed)
        events.store_permissions_changed.disconnect(self._on_store_changed)
        events.role_permissions_changed.disconnect(self._on_role_changed)
        events.tenant_permissions_changed.disconnect(self._on_tenant_changed)

    def _on_user_changed(self, sender, user_id: int, **_extra) -> None:
        self.invalidate_user(user_id, sender)

    def _on_store_changed(self, sender, store_id: int, user_id: int | None = None, **_extra) -> None:
        # The store may be new to the user, so the cached entry would not list it
        if user_id is not None:
            self.invalidate_user(user_id, sender)
        self.invalidate_store(store_id, sender)

    def _on_role_changed(self, sender, role: str, **_extra) -> None:
        self.invalidate_role(role, sender)

    def _on_tenant_changed(self, sender, **_extra) -> None:
        if sender is None:
            self.clear()
        else:
            self.invalidate_tenant(sender)
