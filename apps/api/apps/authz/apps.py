"""Authz app configuration."""
from django.apps import AppConfig
from django.conf import settings


class AuthzConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.authz'
    verbose_name = 'Authentication & Roles'

    def ready(self):
        from apps.authz.cache import RoleCache

        self.role_cache = RoleCache(
            ttl_seconds=getattr(settings, 'ROLE_CACHE_TTL_SECONDS', 300),
            alias=getattr(settings, 'ROLE_CACHE_ALIAS', 'roles'),
        )
        import apps.authz.signals  # noqa
