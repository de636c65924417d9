"""Visits app configuration."""
from django.apps import AppConfig


class VisitsConfig(AppConfig):
    """Patient visits and the visit status workflow."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.visits'
    verbose_name = 'Visits'
