"""
Test settings for LicenseDashboard.
"""

from .base import *  # noqa: F403, F401

DEBUG = False

# Use in-memory SQLite; tables are created from the models directly
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}
MIGRATION_MODULES = {}

# Use in-memory cache for tests
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# Password hashers for faster tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# The API tests call views without a session
REST_FRAMEWORK = {
    **REST_FRAMEWORK,  # noqa: F405
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [],
}

LICENSE_NOTIFICATIONS = {
    "ENABLED": True,
    "DEFAULT_RECIPIENT": "ops@example.com",
    "FROM_EMAIL": "licenses@example.com",
}

LICENSE_SYNC = {
    **LICENSE_SYNC,  # noqa: F405
    "BASE_URL": "https://licenses.example.com",
    "API_KEY": "test-key",
}

CELERY_TASK_ALWAYS_EAGER = True

# Disable logging during tests
LOGGING_CONFIG = None
