"""
Role cache.

Role lookups happen on every clinical write. RoleCache keeps each user's role
set in a Django cache alias for a bounded time and exposes explicit
invalidation. One instance is owned by AuthzConfig and handed to
resolve_actor(); nothing in the workflow guards reaches for it globally.

The alias (ROLE_CACHE_ALIAS, default "roles") must be shared by every worker
(Redis in production) for invalidation to reach all of them.
"""
from typing import Callable, FrozenSet, Optional

from django.conf import settings
from django.core.cache import caches

KEY_PREFIX = 'authz:roles'


class RoleCache:
    """TTL cache of user id -> frozenset of role names."""

    def __init__(self, ttl_seconds: Optional[float] = None, alias: Optional[str] = None):
        if ttl_seconds is None:
            ttl_seconds = getattr(settings, 'ROLE_CACHE_TTL_SECONDS', 300)
        self.ttl_seconds = ttl_seconds
        self.alias = alias or getattr(settings, 'ROLE_CACHE_ALIAS', 'roles')

    @property
    def backend(self):
        return caches[self.alias]

    def _key(self, user_id) -> str:
        return f'{KEY_PREFIX}:{user_id}'

    def get(self, user_id) -> Optional[FrozenSet[str]]:
        roles = self.backend.get(self._key(user_id))
        return frozenset(roles) if roles is not None else None

    def set(self, user_id, roles) -> FrozenSet[str]:
        frozen = frozenset(roles)
        # Stored as a sorted list so any serializer (pickle, JSON) round-trips it
        self.backend.set(self._key(user_id), sorted(frozen), timeout=self.ttl_seconds)
        return frozen

    def get_or_load(self, user_id, loader: Callable[[], object]) -> FrozenSet[str]:
        cached = self.get(user_id)
        if cached is not None:
            return cached
        return self.set(user_id, loader())

    def invalidate(self, user_id=None):
        """Drop one user's entry, or the whole alias when user_id is None."""
        if user_id is None:
            self.backend.clear()
        else:
            self.backend.delete(self._key(user_id))
