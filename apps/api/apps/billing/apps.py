"""Billing app configuration."""
from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Chargeable items, payments and the discharge billing gate."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.billing'
    verbose_name = 'Billing & Cashier'
