"""
External license sync engine.

Pulls paginated records from the external license API, transforms them
and upserts each page into the license store. Every external call goes
through retry with backoff and a shared circuit breaker. A run always
ends in a SyncRun summary, which is persisted for operational visibility.
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Protocol, TypeVar

from django.utils import timezone

from core.domain.batch import CancellationToken
from core.domain.events import EventBus
from core.domain.exceptions import (
    DomainException,
    InvalidExternalRecordError,
    LicenseNotFoundError,
    PersistenceError,
)
from core.infrastructure.circuit_breaker import CircuitBreaker
from core.infrastructure.events import event_bus as default_event_bus
from core.infrastructure.retry import with_retry
from core.metrics import sync_records_total, sync_run_duration_seconds, sync_runs_total
from external_sync.application.config import SyncConfig
from external_sync.domain.external_license import transform_external_record
from external_sync.domain.sync_run import SyncRun
from external_sync.ports.external_license_api import ExternalLicenseApi, ExternalLicensePage
from external_sync.ports.sync_run_repository import SyncRunRepository
from licenses.application.config import LifecycleConfig
from licenses.domain.events import LicenseCreated
from licenses.domain.license import License
from licenses.domain.sync import SyncedLicense, UpsertResult
from licenses.ports.license_repository import LicenseRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXTERNAL_API_NAME = "external-license-api"
SKIPPED_MESSAGE = "Another sync run is in progress"


class SyncLock(Protocol):
    def acquire(self) -> bool: ...

    def release(self) -> None: ...


def _record_identity(raw: Any) -> Optional[str]:
    if isinstance(raw, Mapping):
        return raw.get("appid") or (f"countid:{raw['countid']}" if raw.get("countid") else None)
    return None


class ExternalLicenseSyncEngine:
    """Reconciles local licenses with the external license API."""

    def __init__(
        self,
        api: ExternalLicenseApi,
        repository: LicenseRepository,
        run_repository: SyncRunRepository,
        config: Optional[SyncConfig] = None,
        lifecycle_config: Optional[LifecycleConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
        lock_factory: Optional[Callable[[], SyncLock]] = None,
        event_bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the engine.

        Args:
            api: External license API client
            repository: License store receiving the upserts
            run_repository: Store for sync run summaries
            config: Paging, retry and breaker settings
            lifecycle_config: Supplies the grace period for imported licenses
            breaker: Circuit breaker shared by every call to the API
            lock_factory: Builds a single-flight lock per run; None disables locking
            event_bus: Receives LicenseCreated for imported licenses
            clock: Returns the current aware datetime
            sleep: Awaitable sleep used between retries
        """
        self.api = api
        self.repository = repository
        self.run_repository = run_repository
        self.config = config or SyncConfig()
        self.lifecycle_config = lifecycle_config or LifecycleConfig()
        self.breaker = breaker or CircuitBreaker(
            EXTERNAL_API_NAME,
            failure_threshold=self.config.circuit_failure_threshold,
            reset_timeout=self.config.circuit_reset_timeout,
            success_threshold=self.config.circuit_success_threshold,
        )
        self.lock_factory = lock_factory
        self.event_bus = event_bus or default_event_bus
        self.clock = clock or timezone.now
        self.sleep = sleep

    async def sync(
        self,
        dry_run: bool = False,
        max_pages: Optional[int] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> SyncRun:
        """
        Run a full sync.

        Args:
            dry_run: Fetch and transform only, without writing licenses
            max_pages: Page cap for this run, defaults to the configured cap
            cancellation: Checked between pages

        Returns:
            The persisted SyncRun; ``skipped`` when another run holds the lock
        """
        run = SyncRun(
            started_at=self.clock(),
            dry_run=dry_run,
            max_recorded_errors=self.config.max_recorded_errors,
        )
        lock = self.lock_factory() if self.lock_factory else None
        if lock is not None and not lock.acquire():
            logger.info("External sync skipped: %s", SKIPPED_MESSAGE)
            run.skip(self.clock(), SKIPPED_MESSAGE)
            sync_runs_total.labels(status=str(run.status)).inc()
            await self._save_run(run)
            return run

        page_limit = max_pages or self.config.max_pages
        logger.info("Starting external sync (dry_run=%s, max_pages=%d)", dry_run, page_limit)
        started = time.monotonic()
        try:
            aborted = await self._sync_pages(run, page_limit, cancellation)
        except Exception as e:
            logger.error("External sync crashed: %s", e, exc_info=True)
            run.record_error(None, str(e), "UNEXPECTED_ERROR")
            run.fail(self.clock(), f"Sync stopped by an unexpected error: {e}")
            self._log_finished(run, started)
            await self._save_run(run)
            raise
        finally:
            if lock is not None:
                lock.release()

        run.finish(self.clock(), aborted=aborted)
        self._log_finished(run, started)
        await self._save_run(run)
        return run

    async def sync_single_license(self, appid: str) -> UpsertResult:
        """
        Fetch one license by appid and upsert it.

        Raises:
            LicenseNotFoundError: If the external API does not know the appid
            InvalidExternalRecordError: If the record cannot be transformed
            ExternalServiceError: If the API cannot be reached
        """
        raw = await self._call(lambda: self.api.fetch_by_appid(appid), f"fetch license {appid}")
        if raw is None:
            raise LicenseNotFoundError(f"License {appid} not found in external API")
        now = self.clock()
        record = transform_external_record(raw, now, self.lifecycle_config.default_grace_period_days)
        result = await self.repository.upsert([record], now)
        await self._publish_created(result.created, now)
        if result.failures:
            failure = result.failures[0]
            raise InvalidExternalRecordError(f"License {appid} rejected: {failure.error}")
        logger.info(
            "Synced license %s: created=%d updated=%d unchanged=%d",
            appid,
            len(result.created),
            len(result.updated),
            len(result.unchanged),
        )
        return result

    async def health_check(self) -> bool:
        """Return True if the external API answers."""
        return await self.api.health_check()

    async def _sync_pages(
        self, run: SyncRun, page_limit: int, cancellation: Optional[CancellationToken]
    ) -> bool:
        """Fetch and load pages until exhausted. Returns True if cancelled."""
        page_number = 1
        while True:
            if cancellation is not None and cancellation.cancelled:
                logger.info("External sync cancelled after %d page(s)", run.pages_fetched)
                return True
            try:
                page = await self._fetch_page(page_number)
            except DomainException as e:
                logger.error("Fetching page %d failed: %s", page_number, e.message)
                run.record_error(f"page {page_number}", e.message, e.code)
                return False

            run.pages_fetched += 1
            run.fetched += len(page.records)
            await self._load_page(run, page.records)

            if not page.has_more:
                return False
            if page_number >= page_limit:
                logger.warning("External sync stopped at page cap %d with pages remaining", page_limit)
                return False
            page_number += 1

    async def _fetch_page(self, page_number: int) -> ExternalLicensePage:
        return await self._call(
            lambda: self.api.fetch_page(page_number, self.config.page_size),
            f"fetch page {page_number}",
        )

    async def _call(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        return await with_retry(
            lambda: self.breaker.call(operation),
            self.config.retry_policy,
            description=description,
            sleep=self.sleep,
        )

    async def _load_page(self, run: SyncRun, records: List[Any]) -> None:
        now = self.clock()
        grace_days = self.lifecycle_config.default_grace_period_days
        transformed: List[SyncedLicense] = []
        for raw in records:
            try:
                transformed.append(transform_external_record(raw, now, grace_days))
            except InvalidExternalRecordError as e:
                logger.error("Invalid external record %s: %s", _record_identity(raw), e.message)
                run.record_error(_record_identity(raw), e.message, e.code)
                sync_records_total.labels(result="invalid").inc()

        if run.dry_run:
            run.validated += len(transformed)
            sync_records_total.labels(result="validated").inc(len(transformed))
            return
        if not transformed:
            return

        try:
            result = await self.repository.upsert(transformed, now)
        except PersistenceError as e:
            logger.error("Upsert of %d record(s) failed: %s", len(transformed), e.message, exc_info=True)
            for record in transformed:
                run.record_error(record.identity, e.message, e.code)
            sync_records_total.labels(result="failed").inc(len(transformed))
            return

        run.created += len(result.created)
        run.updated += len(result.updated)
        run.unchanged += len(result.unchanged)
        for failure in result.failures:
            run.record_error(failure.item, failure.error, failure.error_code)
        sync_records_total.labels(result="created").inc(len(result.created))
        sync_records_total.labels(result="updated").inc(len(result.updated))
        sync_records_total.labels(result="unchanged").inc(len(result.unchanged))
        sync_records_total.labels(result="failed").inc(len(result.failures))
        await self._publish_created(result.created, now)

    async def _publish_created(self, licenses: List[License], now: datetime) -> None:
        for license in licenses:
            await self.event_bus.publish(
                LicenseCreated(
                    license_id=license.id,
                    dba=license.dba,
                    source="external_sync",
                    appid=license.appid,
                    occurred_at=now,
                )
            )

    async def _save_run(self, run: SyncRun) -> None:
        try:
            await self.run_repository.save(run)
        except PersistenceError as e:
            logger.error("Could not persist sync run %s: %s", run.id, e.message, exc_info=True)

    def _log_finished(self, run: SyncRun, started: float) -> None:
        sync_runs_total.labels(status=str(run.status)).inc()
        sync_run_duration_seconds.observe(time.monotonic() - started)
        logger.info(
            "External sync %s: pages=%d fetched=%d created=%d updated=%d unchanged=%d "
            "validated=%d failed=%d",
            run.status,
            run.pages_fetched,
            run.fetched,
            run.created,
            run.updated,
            run.unchanged,
            run.validated,
            run.failed,
        )
