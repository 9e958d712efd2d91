"""
Base Django settings for LicenseDashboard.

These settings are shared across all environments.
Environment-specific overrides are in dev.py, test.py, and prod.py
"""
import os
from pathlib import Path

from celery.schedules import crontab

from .logging import get_logging_config

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.environ.get("SECRET_KEY", "django-insecure-license-dashboard-dev-key")

# Application definition
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third party
    "rest_framework",
    "drf_spectacular",
    # Local apps
    "core",
    "licenses.apps.LicensesConfig",
    "external_sync.apps.ExternalSyncConfig",
    "api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "LicenseDashboard.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("DB_NAME", "license_dashboard"),
        "USER": os.environ.get("DB_USER", "postgres"),
        "PASSWORD": os.environ.get("DB_PASSWORD", "postgres"),
        "HOST": os.environ.get("DB_HOST", "localhost"),
        "PORT": os.environ.get("DB_PORT", "5432"),
        "OPTIONS": {
            "connect_timeout": 10,
        },
    }
}

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# REST Framework
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAdminUser",
    ],
    "EXCEPTION_HANDLER": "api.exceptions.custom_exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

# drf-spectacular settings
SPECTACULAR_SETTINGS = {
    "TITLE": "License Dashboard API",
    "DESCRIPTION": (
        "License lifecycle operations and synchronization with the "
        "external license API."
    ),
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "COMPONENT_SPLIT_REQUEST": True,
    "SCHEMA_PATH_PREFIX": "/api/v1",
    "TAGS": [
        {"name": "Lifecycle API", "description": "Manual license lifecycle actions"},
        {"name": "Sync API", "description": "External license synchronization"},
    ],
}

# Redis Cache, also holds the single-flight sync lock
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.redis.RedisCache",
        "LOCATION": os.environ.get("REDIS_URL", "redis://127.0.0.1:6379/1"),
        "OPTIONS": {
            "socket_connect_timeout": 5,
            "socket_timeout": 5,
        },
    }
}

# Email
EMAIL_BACKEND = os.environ.get("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = os.environ.get("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.environ.get("EMAIL_PORT", "25"))

# License lifecycle
LICENSE_LIFECYCLE = {
    "REMINDER_THRESHOLDS": {"30days": 30, "7days": 7, "1day": 1},
    "DEFAULT_GRACE_PERIOD_DAYS": int(os.environ.get("LICENSE_GRACE_PERIOD_DAYS", "30")),
    "ATTENTION_DAYS_THRESHOLD": int(os.environ.get("LICENSE_ATTENTION_DAYS", "30")),
    "AUTO_SUSPEND_REASON": "Auto-suspended due to expiration and grace period end",
}

LICENSE_NOTIFICATIONS = {
    "ENABLED": os.environ.get("LICENSE_NOTIFICATIONS_ENABLED", "true").lower() == "true",
    "DEFAULT_RECIPIENT": os.environ.get("LICENSE_NOTIFICATIONS_RECIPIENT", "admin@example.com"),
    "FROM_EMAIL": os.environ.get("LICENSE_NOTIFICATIONS_FROM", "noreply@example.com"),
}

# External license API
LICENSE_SYNC = {
    "BASE_URL": os.environ.get("EXTERNAL_LICENSE_API_URL", ""),
    "API_KEY": os.environ.get("EXTERNAL_LICENSE_API_KEY", ""),
    "PAGE_SIZE": int(os.environ.get("EXTERNAL_LICENSE_PAGE_SIZE", "100")),
    "TIMEOUT_SECONDS": float(os.environ.get("EXTERNAL_LICENSE_API_TIMEOUT", "30")),
    "USER_AGENT": "License-Dashboard-Sync/1.0",
    "MAX_PAGES": int(os.environ.get("EXTERNAL_LICENSE_MAX_PAGES", "1000")),
    "RETRY_ATTEMPTS": 3,
    "RETRY_INITIAL_DELAY": 2,
    "RETRY_MAX_DELAY": 30,
    "RETRY_BACKOFF_MULTIPLIER": 2.0,
    "CIRCUIT_FAILURE_THRESHOLD": 5,
    "CIRCUIT_RESET_TIMEOUT": 60,
    "CIRCUIT_SUCCESS_THRESHOLD": 1,
    "LOCK_TIMEOUT": 3600,
    "MAX_RECORDED_ERRORS": 50,
}

# Celery
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", os.environ.get("REDIS_URL", "redis://127.0.0.1:6379/0"))
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_BEAT_SCHEDULE = {
    "license-renewal-reminders": {
        "task": "licenses.tasks.process_expiring_licenses_task",
        "schedule": crontab(minute=0, hour="9,13,17", day_of_week="1-5"),
    },
    "license-auto-suspension": {
        "task": "licenses.tasks.process_expired_licenses_task",
        "schedule": crontab(minute=0, hour=2),
    },
    "license-grace-period-backfill": {
        "task": "licenses.tasks.update_grace_periods_task",
        "schedule": crontab(minute=0, hour=3, day_of_week=0),
    },
    "external-license-sync": {
        "task": "external_sync.tasks.sync_external_licenses_task",
        "schedule": crontab(minute="*/30"),
    },
}

# Observability
LOGGING = get_logging_config(os.environ.get("ENVIRONMENT", "development"))
