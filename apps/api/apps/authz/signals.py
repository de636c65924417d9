"""
Keep the role cache honest: any change to a user's role assignments drops
that user's cached role set.
"""
from django.apps import apps as django_apps
from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from apps.authz.models import UserRole


@receiver(post_save, sender=UserRole)
@receiver(post_delete, sender=UserRole)
def invalidate_cached_roles(sender, instance, **kwargs):
    role_cache = django_apps.get_app_config('authz').role_cache
    user_id = instance.user_id
    role_cache.invalidate(user_id)
    # Again after commit: a reader may have cached the old set in between
    transaction.on_commit(lambda: role_cache.invalidate(user_id))
