"""
Celery task for the scheduled external license sync.
"""
import logging

from asgiref.sync import async_to_sync

from LicenseDashboard.celery import app
from external_sync.infrastructure.factory import build_sync_engine

logger = logging.getLogger(__name__)


@app.task(bind=True, max_retries=3)
def sync_external_licenses_task(self, dry_run=False, max_pages=None):
    """
    Sync licenses from the external license API.

    External API failures end up in the run summary; only failures outside
    the run, such as a missing configuration, are retried here.
    """
    try:
        run = async_to_sync(build_sync_engine().sync)(dry_run=dry_run, max_pages=max_pages)
    except Exception as exc:
        logger.error("External sync failed: %s", exc, exc_info=True)
        raise self.retry(exc=exc, countdown=2 ** self.request.retries * 60)
    return run.to_dict()
