"""
Wiring of the sync engine from Django settings.
"""
from core.infrastructure.circuit_breaker import CircuitBreaker
from external_sync.application.config import SyncConfig
from external_sync.application.sync_engine import EXTERNAL_API_NAME, ExternalLicenseSyncEngine
from external_sync.infrastructure.external_license_api import RequestsExternalLicenseApi
from external_sync.infrastructure.lock import CacheSyncLock
from external_sync.infrastructure.repositories.django_sync_run_repository import (
    DjangoSyncRunRepository,
)
from licenses.application.config import LifecycleConfig
from licenses.infrastructure.repositories.django_license_repository import (
    DjangoLicenseRepository,
)

# One breaker per process so consecutive failures accumulate across runs.
_breaker = None


def get_circuit_breaker(config: SyncConfig) -> CircuitBreaker:
    global _breaker  # pylint: disable=global-statement
    if _breaker is None:
        _breaker = CircuitBreaker(
            EXTERNAL_API_NAME,
            failure_threshold=config.circuit_failure_threshold,
            reset_timeout=config.circuit_reset_timeout,
            success_threshold=config.circuit_success_threshold,
        )
    return _breaker


def build_sync_engine() -> ExternalLicenseSyncEngine:
    """Sync engine backed by the requests client and Django repositories."""
    config = SyncConfig.from_settings()
    return ExternalLicenseSyncEngine(
        api=RequestsExternalLicenseApi(config),
        repository=DjangoLicenseRepository(),
        run_repository=DjangoSyncRunRepository(),
        config=config,
        lifecycle_config=LifecycleConfig.from_settings(),
        breaker=get_circuit_breaker(config),
        lock_factory=lambda: CacheSyncLock(timeout=config.lock_timeout),
    )
