"""
Authenticated actor resolution.

An Actor is the server-side identity a clinical write runs under: user id,
role names, derived permissions and the authoring variant.
"""
from dataclasses import dataclass
from typing import FrozenSet, Iterable

from django.apps import apps as django_apps

from apps.authz.cache import RoleCache
from apps.authz.models import RoleChoices
from apps.authz.permissions import permissions_for_roles
from apps.clinical.authoring import AuthorRole, author_role_for
from apps.core.observability.correlation import set_actor_context


@dataclass(frozen=True)
class Actor:
    user_id: str
    roles: FrozenSet[str]
    permissions: FrozenSet[str]

    @property
    def author_role(self) -> AuthorRole:
        return author_role_for(self.roles)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def has_any(self, required: Iterable[str]) -> bool:
        return any(p in self.permissions for p in required)


def default_role_cache() -> RoleCache:
    return django_apps.get_app_config('authz').role_cache


def load_roles(user) -> FrozenSet[str]:
    roles = set(user.user_roles.values_list('role__name', flat=True))
    if user.is_superuser:
        roles.add(RoleChoices.SUPER_ADMIN.value)
    return frozenset(roles)


def resolve_actor(user, role_cache: RoleCache) -> Actor:
    """Build the Actor for user, reading roles through role_cache."""
    roles = role_cache.get_or_load(user.pk, lambda: load_roles(user))
    set_actor_context(user.pk, roles)
    return Actor(
        user_id=str(user.pk),
        roles=roles,
        permissions=permissions_for_roles(roles),
    )


def get_request_actor(request) -> Actor:
    """Actor for this request, resolved at most once."""
    actor = getattr(request, 'actor', None)
    if actor is None or actor.user_id != str(request.user.pk):
        actor = resolve_actor(request.user, default_role_cache())
        request.actor = actor
    return actor
