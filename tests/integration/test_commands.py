"""
Integration tests for the management commands and Celery tasks.
"""

from datetime import timedelta
from io import StringIO
from unittest.mock import patch

import pytest
from asgiref.sync import async_to_sync
from django.core import mail
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from core.domain.exceptions import ExternalServiceError
from external_sync.application.config import SyncConfig
from external_sync.application.sync_engine import ExternalLicenseSyncEngine
from licenses.models import License as LicenseModel
from licenses.models import RenewalHistoryEntry
from licenses.tasks import process_expired_licenses_task, update_grace_periods_task
from tests.conftest import make_license
from tests.fakes import (
    FakeExternalApi,
    InMemoryLicenseRepository,
    InMemorySyncRunRepository,
    RecordingEventBus,
    RecordingSleep,
    external_record,
)

SYNC_COMMAND = "external_sync.management.commands.sync_external_licenses"


@pytest.fixture
def fake_api():
    return FakeExternalApi([external_record("APP-1"), external_record("APP-2")])


@pytest.fixture
def fake_engine(fake_api):
    engine = ExternalLicenseSyncEngine(
        api=fake_api,
        repository=InMemoryLicenseRepository(),
        run_repository=InMemorySyncRunRepository(),
        config=SyncConfig(retry_attempts=0),
        event_bus=RecordingEventBus(),
        sleep=RecordingSleep(),
    )
    with patch(f"{SYNC_COMMAND}.build_sync_engine", return_value=engine):
        yield engine


def expired_license(license_repository, license_id):
    now = timezone.now()
    return async_to_sync(license_repository.save)(
        make_license(
            id=license_id,
            starts_at=now - timedelta(days=120),
            expires_at=now - timedelta(days=60),
        )
    )


class TestSyncExternalLicensesCommand:
    """Tests for the sync_external_licenses command."""

    def test_sync(self, fake_engine):
        """Test a successful run prints its summary."""
        out = StringIO()
        call_command("sync_external_licenses", stdout=out)
        assert "Sync success" in out.getvalue()
        assert "created=2" in out.getvalue()

    def test_dry_run(self, fake_engine):
        out = StringIO()
        call_command("sync_external_licenses", "--dry-run", stdout=out)
        assert "DRY RUN" in out.getvalue()
        assert "validated=2" in out.getvalue()

    def test_failed_run_raises(self, fake_engine, fake_api):
        """Test a failed run exits with an error."""
        fake_api.page_errors[1] = ExternalServiceError("connection refused")
        out = StringIO()

        with pytest.raises(CommandError, match="Sync failed"):
            call_command("sync_external_licenses", stdout=out)

        assert "page 1: connection refused" in out.getvalue()

    def test_invalid_max_pages(self, fake_engine):
        with pytest.raises(CommandError):
            call_command("sync_external_licenses", "--max-pages", "0")

    def test_health_check(self, fake_engine, fake_api):
        out = StringIO()
        call_command("sync_external_licenses", "--health-check", stdout=out)
        assert "healthy" in out.getvalue()

        fake_api.page_errors[1] = ExternalServiceError("down")
        with pytest.raises(CommandError):
            call_command("sync_external_licenses", "--health-check")


@pytest.mark.django_db
@pytest.mark.integration
class TestRunLicenseLifecycleCommand:
    """Tests for the run_license_lifecycle command."""

    def test_suspensions(self, license_repository):
        """Test expired licenses are suspended and their owners emailed."""
        expired_license(license_repository, "lic-1")
        out = StringIO()

        call_command("run_license_lifecycle", "--operation", "suspensions", stdout=out)

        assert "'suspended': 1" in out.getvalue()
        assert LicenseModel.objects.get(id="lic-1").suspended_at is not None
        assert RenewalHistoryEntry.objects.get(license_id="lic-1").action == "auto_suspended"
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ["owner@sunsetnails.example"]

    def test_dry_run_changes_nothing(self, license_repository):
        """Test dry-run lists affected licenses only."""
        expired_license(license_repository, "lic-1")
        out = StringIO()

        call_command("run_license_lifecycle", "--dry-run", stdout=out)

        assert "1 license(s) would be suspended" in out.getvalue()
        assert LicenseModel.objects.get(id="lic-1").suspended_at is None
        assert mail.outbox == []


@pytest.mark.django_db
@pytest.mark.integration
class TestLifecycleTasks:
    """Tests for the Celery lifecycle tasks."""

    def test_expired_licenses_task(self, license_repository):
        """Test the suspension task returns its summary."""
        expired_license(license_repository, "lic-1")

        result = process_expired_licenses_task.apply().get()

        assert result["suspended"] == 1
        assert result["notified"] == 1

    def test_grace_period_task(self, license_repository):
        """Test the backfill task sets missing grace period ends."""
        expired_license(license_repository, "lic-1")

        result = update_grace_periods_task.apply().get()

        assert result["updated"] == 1
        assert LicenseModel.objects.get(id="lic-1").grace_period_end is not None
