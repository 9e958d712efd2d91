"""
Model registration for the external_sync app.
"""
from external_sync.infrastructure.models import SyncRunRecord  # noqa: F401
