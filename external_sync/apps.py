"""
App configuration for the external_sync app.
"""

from django.apps import AppConfig


class ExternalSyncConfig(AppConfig):
    """App configuration for external sync."""

    name = "external_sync"
    verbose_name = "External Sync"
