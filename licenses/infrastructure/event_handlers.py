"""
Event handlers for license domain events.
"""

import logging

from core.domain.events import DomainEvent, EventBus, EventHandler
from core.metrics import license_events_total
from licenses.domain.events import LICENSE_EVENT_TYPES

logger = logging.getLogger(__name__)


class AuditLogEventHandler(EventHandler):
    """Writes every license event to the structured log."""

    async def handle(self, event: DomainEvent) -> None:
        """
        Handle domain event for audit logging.

        Args:
            event: Domain event to log
        """
        logger.info(
            "Audit log: %s - %s",
            event.event_type,
            event.aggregate_id,
            extra={"event": event.to_dict()},
        )


class LicenseEventMetricsHandler(EventHandler):
    """Counts license events by type."""

    async def handle(self, event: DomainEvent) -> None:
        license_events_total.labels(event_type=event.event_type).inc()


def register_event_handlers(bus: EventBus) -> None:
    """Subscribe the license handlers to every license event type."""
    audit = AuditLogEventHandler()
    metrics = LicenseEventMetricsHandler()
    for event_type in LICENSE_EVENT_TYPES:
        bus.subscribe(event_type, audit)
        bus.subscribe(event_type, metrics)
    logger.debug("Registered license event handlers")
