"""
Celery tasks for scheduled license lifecycle operations.
"""
import logging

from asgiref.sync import async_to_sync

from LicenseDashboard.celery import app
from licenses.infrastructure.factory import build_lifecycle_service

logger = logging.getLogger(__name__)


@app.task(bind=True, max_retries=3)
def process_expiring_licenses_task(self):
    """Send renewal reminders for every tier."""
    try:
        result = async_to_sync(build_lifecycle_service().process_expiring_licenses)()
    except Exception as exc:
        logger.error("Reminder run failed: %s", exc, exc_info=True)
        raise self.retry(exc=exc, countdown=2 ** self.request.retries * 60)
    return result.to_dict()


@app.task(bind=True, max_retries=3)
def process_expired_licenses_task(self):
    """Suspend licenses past their grace period."""
    try:
        result = async_to_sync(build_lifecycle_service().process_expired_licenses)()
    except Exception as exc:
        logger.error("Suspension run failed: %s", exc, exc_info=True)
        raise self.retry(exc=exc, countdown=2 ** self.request.retries * 60)
    return result.to_dict()


@app.task(bind=True, max_retries=3)
def update_grace_periods_task(self):
    """Backfill missing grace period ends."""
    try:
        result = async_to_sync(build_lifecycle_service().update_grace_periods)()
    except Exception as exc:
        logger.error("Grace period backfill failed: %s", exc, exc_info=True)
        raise self.retry(exc=exc, countdown=2 ** self.request.retries * 60)
    return result.to_dict()
