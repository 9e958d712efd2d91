"""
Unit tests for the external license sync engine.
"""

import pytest

from core.domain.batch import CancellationToken
from core.domain.exceptions import (
    ExternalServiceError,
    InvalidExternalRecordError,
    LicenseNotFoundError,
    PersistenceError,
)
from core.infrastructure.circuit_breaker import CircuitState
from external_sync.application.config import SyncConfig
from external_sync.application.sync_engine import SKIPPED_MESSAGE, ExternalLicenseSyncEngine
from external_sync.domain.sync_run import SyncRunStatus
from external_sync.infrastructure.lock import CacheSyncLock
from tests.fakes import (
    FakeExternalApi,
    InMemorySyncRunRepository,
    RecordingSleep,
    external_record,
)


@pytest.fixture
def api():
    """Five valid external records."""
    return FakeExternalApi([external_record(f"APP-{n}") for n in range(1, 6)])


@pytest.fixture
def run_repository():
    return InMemorySyncRunRepository()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_engine(api, repository, run_repository, event_bus, clock, sleep):
    """Factory for an engine over fakes with two records per page."""

    def factory(**overrides):
        config = overrides.pop("config", SyncConfig(page_size=2))
        return ExternalLicenseSyncEngine(
            api=api,
            repository=repository,
            run_repository=run_repository,
            config=config,
            event_bus=event_bus,
            clock=clock,
            sleep=sleep,
            **overrides,
        )

    return factory


class TestFullSync:
    """Tests for paginated sync runs."""

    @pytest.mark.asyncio
    async def test_imports_every_page(self, make_engine, api, repository, run_repository, event_bus):
        """Test all pages are fetched and every record is created."""
        run = await make_engine().sync()

        assert run.status is SyncRunStatus.SUCCESS
        assert api.calls == [1, 2, 3]
        assert run.pages_fetched == 3
        assert run.fetched == 5
        assert run.created == 5
        assert run.failed == 0
        assert len(repository.licenses) == 5
        assert run_repository.runs == [run]
        created = event_bus.of_type("LicenseCreated")
        assert len(created) == 5
        assert {event.source for event in created} == {"external_sync"}

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, make_engine, repository, event_bus):
        """Test re-syncing identical data creates and changes nothing."""
        engine = make_engine()
        await engine.sync()
        before = dict(repository.licenses)

        second = await engine.sync()

        assert second.created == 0
        assert second.updated == 0
        assert second.unchanged == 5
        assert repository.licenses == before
        assert len(event_bus.of_type("LicenseCreated")) == 5

    @pytest.mark.asyncio
    async def test_changed_record_is_updated(self, make_engine, api, repository):
        """Test a changed source attribute updates the local license."""
        engine = make_engine()
        await engine.sync()
        api.records[0]["monthlyFee"] = "59.99"

        run = await engine.sync()

        assert run.updated == 1
        assert run.unchanged == 4
        updated = next(lic for lic in repository.licenses.values() if lic.appid == "APP-1")
        assert str(updated.last_payment) == "59.99"

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, make_engine, repository, event_bus):
        """Test dry-run only validates."""
        run = await make_engine().sync(dry_run=True)

        assert run.status is SyncRunStatus.SUCCESS
        assert run.dry_run is True
        assert run.validated == 5
        assert run.created == 0
        assert repository.licenses == {}
        assert event_bus.events == []

    @pytest.mark.asyncio
    async def test_max_pages_caps_the_run(self, make_engine, api):
        """Test the page cap stops paging early."""
        run = await make_engine().sync(max_pages=1)

        assert api.calls == [1]
        assert run.pages_fetched == 1
        assert run.created == 2
        assert run.status is SyncRunStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_pages_without_total_stop_on_short_page(self, make_engine, api):
        """Test paging without metadata stops at the first short page."""
        api.report_total = False

        run = await make_engine().sync()

        assert api.calls == [1, 2, 3]
        assert run.created == 5

    @pytest.mark.asyncio
    async def test_empty_source(self, make_engine, api):
        """Test an empty first page ends a successful run."""
        api.records = []

        run = await make_engine().sync()

        assert run.status is SyncRunStatus.SUCCESS
        assert run.pages_fetched == 1
        assert run.fetched == 0


class TestSyncFailures:
    """Tests for failure handling during sync."""

    @pytest.mark.asyncio
    async def test_invalid_record_makes_run_partial(self, make_engine, api):
        """Test a malformed record is reported and the rest imported."""
        api.records[1] = external_record("APP-X", status=None)

        run = await make_engine().sync()

        assert run.status is SyncRunStatus.PARTIAL
        assert run.created == 4
        assert run.failed == 1
        assert run.errors[0]["item"] == "APP-X"
        assert run.errors[0]["code"] == "INVALID_EXTERNAL_RECORD"

    @pytest.mark.asyncio
    async def test_first_page_failure_fails_run(self, make_engine, api, sleep):
        """Test a non-retryable failure on page 1 fails the run."""
        api.page_errors[1] = ExternalServiceError("HTTP 401", status_code=401)

        run = await make_engine().sync()

        assert run.status is SyncRunStatus.FAILED
        assert run.errors[0]["item"] == "page 1"
        assert api.calls == [1]
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_later_page_failure_is_partial(self, make_engine, api):
        """Test a failure after some successes gives a partial run."""
        api.page_errors[2] = ExternalServiceError("HTTP 400", status_code=400)

        run = await make_engine().sync()

        assert run.status is SyncRunStatus.PARTIAL
        assert run.created == 2
        assert run.errors[0]["item"] == "page 2"

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, make_engine, api, sleep):
        """Test timeouts are retried with backoff and the run succeeds."""
        api.errors = [ExternalServiceError("timeout", retryable=True)] * 2

        run = await make_engine().sync()

        assert run.status is SyncRunStatus.SUCCESS
        assert run.created == 5
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_circuit_opens_and_fails_fast(self, make_engine, api):
        """Test five consecutive failures open the circuit for the next run."""
        api.page_errors[1] = ExternalServiceError("HTTP 503", status_code=503, retryable=True)
        engine = make_engine(config=SyncConfig(page_size=2, retry_attempts=4))

        first = await engine.sync()

        assert first.status is SyncRunStatus.FAILED
        assert len(api.calls) == 5
        assert engine.breaker.state is CircuitState.OPEN

        second = await engine.sync()

        assert len(api.calls) == 5
        assert second.status is SyncRunStatus.FAILED
        assert second.errors[0]["code"] == "CIRCUIT_OPEN"

    @pytest.mark.asyncio
    async def test_persistence_failure_fails_each_record(self, make_engine, repository):
        """Test a failing upsert records a failure per record."""
        repository.fail["upsert"] = PersistenceError("database unavailable")

        run = await make_engine().sync()

        assert run.status is SyncRunStatus.FAILED
        assert run.failed == 5
        assert {error["code"] for error in run.errors} == {"PERSISTENCE_ERROR"}

    @pytest.mark.asyncio
    async def test_run_persistence_failure_is_only_logged(self, make_engine, run_repository):
        """Test the run summary is returned even when it cannot be stored."""
        run_repository.fail = PersistenceError("disk full")

        run = await make_engine().sync()

        assert run.status is SyncRunStatus.SUCCESS
        assert run_repository.runs == []

    @pytest.mark.asyncio
    async def test_error_details_are_capped(self, make_engine, api):
        """Test failures past the cap are counted but not detailed."""
        api.records = [external_record(f"BAD-{n}", status=None) for n in range(5)]
        engine = make_engine(config=SyncConfig(page_size=10, max_recorded_errors=2))

        run = await engine.sync()

        assert run.failed == 5
        assert len(run.errors) == 2


class TestSyncControl:
    """Tests for locking and cancellation."""

    @pytest.mark.asyncio
    async def test_held_lock_skips_run(self, make_engine, api, run_repository):
        """Test a run is skipped while another holds the lock."""
        other = CacheSyncLock()
        assert other.acquire() is True

        run = await make_engine(lock_factory=CacheSyncLock).sync()

        assert run.status is SyncRunStatus.SKIPPED
        assert run.message == SKIPPED_MESSAGE
        assert api.calls == []
        assert run_repository.runs == [run]
        other.release()

    @pytest.mark.asyncio
    async def test_lock_released_after_run(self, make_engine):
        """Test the lock is free once a run finishes."""
        await make_engine(lock_factory=CacheSyncLock).sync()

        lock = CacheSyncLock()
        assert lock.acquire() is True
        lock.release()

    @pytest.mark.asyncio
    async def test_unexpected_error_saves_failed_run(
        self, make_engine, repository, run_repository
    ):
        """Test a crashing run releases the lock and still persists its summary."""
        repository.fail["upsert"] = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await make_engine(lock_factory=CacheSyncLock).sync()

        assert CacheSyncLock().acquire() is True
        [run] = run_repository.runs
        assert run.status is SyncRunStatus.FAILED
        assert run.finished_at is not None
        assert run.pages_fetched == 1
        assert run.errors[-1] == {"item": None, "error": "bug", "code": "UNEXPECTED_ERROR"}
        assert "unexpected error" in run.message

    @pytest.mark.asyncio
    async def test_cancelled_run_is_aborted(self, make_engine, api):
        """Test a cancelled run stops before fetching and reports aborted."""
        token = CancellationToken()
        token.cancel()

        run = await make_engine().sync(cancellation=token)

        assert run.status is SyncRunStatus.ABORTED
        assert api.calls == []


class TestSingleLicenseSync:
    """Tests for syncing one license by appid."""

    @pytest.mark.asyncio
    async def test_creates_license(self, make_engine, repository, event_bus):
        """Test a single record is imported."""
        result = await make_engine().sync_single_license("APP-2")

        assert len(result.created) == 1
        assert result.created[0].appid == "APP-2"
        assert len(repository.licenses) == 1
        assert event_bus.of_type("LicenseCreated")[0].appid == "APP-2"

    @pytest.mark.asyncio
    async def test_existing_license_unchanged(self, make_engine):
        """Test syncing an up to date license reports it unchanged."""
        engine = make_engine()
        await engine.sync_single_license("APP-2")

        result = await engine.sync_single_license("APP-2")

        assert result.created == []
        assert len(result.unchanged) == 1

    @pytest.mark.asyncio
    async def test_unknown_appid(self, make_engine):
        """Test an appid unknown upstream raises not found."""
        with pytest.raises(LicenseNotFoundError):
            await make_engine().sync_single_license("APP-404")

    @pytest.mark.asyncio
    async def test_invalid_record(self, make_engine, api):
        """Test a malformed upstream record is rejected."""
        api.records.append(external_record("APP-BAD", monthlyFee="-1"))
        with pytest.raises(InvalidExternalRecordError):
            await make_engine().sync_single_license("APP-BAD")

    @pytest.mark.asyncio
    async def test_health_check(self, make_engine, api):
        """Test the health check follows the API."""
        engine = make_engine()
        assert await engine.health_check() is True
        api.page_errors[1] = ExternalServiceError("down")
        assert await engine.health_check() is False
