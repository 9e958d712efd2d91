"""
App configuration for the licenses app.
"""

from django.apps import AppConfig


class LicensesConfig(AppConfig):
    """App configuration for licenses."""

    name = "licenses"
    verbose_name = "Licenses"

    def ready(self):
        """Register license event handlers on the process-wide bus."""
        from core.infrastructure.events import event_bus
        from licenses.infrastructure.event_handlers import register_event_handlers

        register_event_handlers(event_bus)
