"""
Pytest configuration for the entire test suite.

This file configures the test database to use SQLite for faster tests.
"""
import django
from django.conf import settings


def pytest_configure():
    """Configure Django settings for tests."""
    # Force SQLite for tests (faster, no PostgreSQL dependency)
    settings.DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': ':memory:',  # In-memory database for speed
        }
    }

    # Same for caches: no Redis, even when REDIS_URL is exported
    settings.CACHES = {
        'default': {'BACKEND': 'django.core.cache.backends.locmem.LocMemCache', 'LOCATION': 'test-default'},
        'roles': {'BACKEND': 'django.core.cache.backends.locmem.LocMemCache', 'LOCATION': 'test-roles'},
    }

    django.setup()
