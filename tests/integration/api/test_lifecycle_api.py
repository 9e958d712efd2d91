"""
Integration tests for the lifecycle and sync API endpoints.
"""

from datetime import timedelta
from unittest.mock import Mock, patch

import pytest
from asgiref.sync import async_to_sync
from django.core import mail
from django.urls import reverse
from django.utils import timezone

from core.domain.exceptions import ExternalServiceError
from core.domain.value_objects import LicenseStatus
from external_sync.application.config import SyncConfig
from external_sync.application.sync_engine import ExternalLicenseSyncEngine
from external_sync.domain.sync_run import SyncRun
from external_sync.infrastructure.repositories.django_sync_run_repository import (
    DjangoSyncRunRepository,
)
from licenses.models import License as LicenseModel
from licenses.models import RenewalHistoryEntry
from tests.conftest import make_license
from tests.fakes import (
    FakeExternalApi,
    InMemoryLicenseRepository,
    InMemorySyncRunRepository,
    RecordingEventBus,
    RecordingSleep,
    external_record,
)

VIEWS = "api.v1.lifecycle.views"


@pytest.fixture
def now():
    return timezone.now()


@pytest.fixture
def store(license_repository):
    """Saves licenses through the Django repository."""

    def save(**overrides):
        return async_to_sync(license_repository.save)(make_license(**overrides))

    return save


@pytest.fixture
def fake_api():
    return FakeExternalApi([external_record(f"APP-{n}") for n in range(1, 4)])


@pytest.fixture
def fake_engine(fake_api):
    """Sync engine over in-memory fakes, patched into the views."""
    engine = ExternalLicenseSyncEngine(
        api=fake_api,
        repository=InMemoryLicenseRepository(),
        run_repository=InMemorySyncRunRepository(),
        config=SyncConfig(page_size=2, retry_attempts=0),
        event_bus=RecordingEventBus(),
        sleep=RecordingSleep(),
    )
    with patch(f"{VIEWS}.build_sync_engine", return_value=engine):
        yield engine


@pytest.mark.django_db
@pytest.mark.integration
class TestLicenseActionsAPI:
    """Integration tests for renew, extend, reactivate and cancel."""

    def test_renew_expired_license(self, api_client, store, now):
        """Test renewing an expired license moves its expiration forward."""
        store(
            starts_at=now - timedelta(days=40),
            expires_at=now - timedelta(days=3),
            renewal_reminders_sent=("30days", "7days", "1day"),
        )

        response = api_client.post(
            reverse("renew-license", args=["lic-1"]),
            {"actor": "ops@example.com", "reason": "paid"},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["renewal_reminders_sent"] == []
        assert data["lifecycle_state"] == "expiring_soon"
        actions = list(
            RenewalHistoryEntry.objects.filter(license_id="lic-1").values_list("action", flat=True)
        )
        assert sorted(actions) == ["expiration_extended", "license_renewed"]
        assert len(mail.outbox) == 2

    def test_renew_with_date(self, api_client, store, now):
        """Test an explicit renewal date is applied."""
        store(starts_at=now - timedelta(days=10))
        target = (now + timedelta(days=365)).replace(microsecond=0)

        response = api_client.post(
            reverse("renew-license", args=["lic-1"]),
            {"new_expiration_date": target.isoformat()},
            format="json",
        )

        assert response.status_code == 200
        assert LicenseModel.objects.get(id="lic-1").expires_at == target

    def test_renew_missing_license(self, api_client):
        """Test renewing an unknown license returns 404."""
        response = api_client.post(reverse("renew-license", args=["nope"]), {}, format="json")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "LICENSE_NOT_FOUND"

    def test_renew_cancelled_license(self, api_client, store, now):
        """Test renewing a cancelled license is a conflict."""
        store(status=LicenseStatus.CANCEL, cancel_date=now)

        response = api_client.post(reverse("renew-license", args=["lic-1"]), {}, format="json")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    def test_extend_requires_date(self, api_client, store):
        """Test extension without a date is rejected."""
        store()
        response = api_client.post(reverse("extend-license", args=["lic-1"]), {}, format="json")
        assert response.status_code == 400

    def test_extend_before_start(self, api_client, store, now):
        """Test an expiration before the start violates an invariant."""
        store(starts_at=now)

        response = api_client.post(
            reverse("extend-license", args=["lic-1"]),
            {"new_expiration_date": (now - timedelta(days=1)).isoformat()},
            format="json",
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_LICENSE_STATE"

    def test_extend(self, api_client, store, now):
        """Test extension stores the new expiration and grace period end."""
        store(starts_at=now - timedelta(days=10), grace_period_days=10)
        new_expiration = (now + timedelta(days=60)).replace(microsecond=0)

        response = api_client.post(
            reverse("extend-license", args=["lic-1"]),
            {"new_expiration_date": new_expiration.isoformat(), "reason": "goodwill"},
            format="json",
        )

        assert response.status_code == 200
        model = LicenseModel.objects.get(id="lic-1")
        assert model.expires_at == new_expiration
        assert model.grace_period_end == new_expiration + timedelta(days=10)
        entry = RenewalHistoryEntry.objects.get(license_id="lic-1")
        assert entry.metadata["reason"] == "goodwill"
        assert entry.actor == "api"

    def test_reactivate_suspended(self, api_client, store, now):
        """Test reactivating a suspended license."""
        store(starts_at=now - timedelta(days=90), suspended_at=now - timedelta(days=1))

        response = api_client.post(
            reverse("reactivate-license", args=["lic-1"]), {"reason": "paid"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["suspended_at"] is None
        assert LicenseModel.objects.get(id="lic-1").suspended_at is None

    def test_reactivate_active_license(self, api_client, store, now):
        """Test reactivating an active license is a conflict."""
        store(starts_at=now - timedelta(days=1), expires_at=now + timedelta(days=100))

        response = api_client.post(
            reverse("reactivate-license", args=["lic-1"]), {}, format="json"
        )

        assert response.status_code == 409

    def test_cancel_twice(self, api_client, store, now):
        """Test the second cancellation is a conflict."""
        store(starts_at=now - timedelta(days=1))
        url = reverse("cancel-license", args=["lic-1"])

        first = api_client.post(url, {"reason": "closed"}, format="json")
        second = api_client.post(url, {}, format="json")

        assert first.status_code == 200
        assert first.json()["status"] == "cancel"
        assert second.status_code == 409


@pytest.mark.django_db
@pytest.mark.integration
class TestAttentionReportAPI:
    """Integration tests for the attention report."""

    def test_report(self, api_client, store, now):
        """Test each category lists its licenses."""
        store(id="soon", starts_at=now - timedelta(days=10), expires_at=now + timedelta(days=5))
        store(id="expired", starts_at=now - timedelta(days=120), expires_at=now - timedelta(days=60))
        store(id="suspended", starts_at=now - timedelta(days=120), suspended_at=now)

        response = api_client.get(reverse("licenses-attention"))

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert [lic["id"] for lic in data["expiring_soon"]] == ["soon"]
        assert data["expiring_soon"][0]["lifecycle_state"] == "expiring_soon"
        assert [lic["id"] for lic in data["expired"]] == ["expired"]
        assert [lic["id"] for lic in data["suspended"]] == ["suspended"]
        assert data["errors"] == {}

    def test_filters(self, api_client, store, now):
        """Test categories can be excluded."""
        store(id="soon", starts_at=now - timedelta(days=10), expires_at=now + timedelta(days=5))

        response = api_client.get(
            reverse("licenses-attention"), {"include_expiring_soon": "false", "days": 10}
        )

        assert response.status_code == 200
        assert response.json()["expiring_soon"] == []

    def test_invalid_days(self, api_client):
        """Test the window is validated."""
        response = api_client.get(reverse("licenses-attention"), {"days": 0})
        assert response.status_code == 400


@pytest.mark.django_db
@pytest.mark.integration
class TestSyncAPI:
    """Integration tests for the sync endpoints."""

    def test_trigger_sync(self, api_client, fake_engine):
        """Test a synchronous run returns its summary."""
        response = api_client.post(reverse("sync-trigger"), {}, format="json")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert data["created"] == 3
        assert data["pages_fetched"] == 2

    def test_trigger_dry_run_with_page_cap(self, api_client, fake_engine):
        """Test dry-run and max_pages are passed through."""
        response = api_client.post(
            reverse("sync-trigger"), {"dry_run": True, "max_pages": 1}, format="json"
        )

        data = response.json()
        assert data["dry_run"] is True
        assert data["validated"] == 2
        assert data["created"] == 0

    def test_trigger_in_background(self, api_client):
        """Test background runs are queued on the task worker."""
        with patch("external_sync.tasks.sync_external_licenses_task.delay") as delay:
            delay.return_value = Mock(id="task-123")
            response = api_client.post(
                reverse("sync-trigger"), {"background": True}, format="json"
            )

        assert response.status_code == 202
        assert response.json() == {"task_id": "task-123"}
        delay.assert_called_once_with(dry_run=False, max_pages=None)

    def test_invalid_max_pages(self, api_client):
        """Test a page cap below one is rejected."""
        response = api_client.post(reverse("sync-trigger"), {"max_pages": 0}, format="json")
        assert response.status_code == 400

    def test_failed_fetch_reported_in_summary(self, api_client, fake_engine, fake_api):
        """Test an unreachable API gives a failed run, not an error response."""
        fake_api.page_errors[1] = ExternalServiceError("connection refused", retryable=True)

        response = api_client.post(reverse("sync-trigger"), {}, format="json")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "failed"
        assert data["errors"][0]["item"] == "page 1"

    def test_sync_single_license(self, api_client, fake_engine):
        """Test one license is imported by appid."""
        response = api_client.post(reverse("sync-single-license", args=["APP-2"]))

        assert response.status_code == 200
        assert response.json() == {"appid": "APP-2", "created": 1, "updated": 0, "unchanged": 0}

    def test_sync_single_unknown(self, api_client, fake_engine):
        """Test an appid unknown upstream returns 404."""
        response = api_client.post(reverse("sync-single-license", args=["APP-404"]))
        assert response.status_code == 404

    def test_sync_single_upstream_down(self, api_client, fake_engine, fake_api):
        """Test an unavailable API returns 503."""
        fake_api.errors = [ExternalServiceError("HTTP 500", status_code=500)]

        response = api_client.post(reverse("sync-single-license", args=["APP-1"]))

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "EXTERNAL_SERVICE_ERROR"

    def test_health(self, api_client, fake_engine, fake_api):
        """Test the health endpoint follows the external API."""
        assert api_client.get(reverse("sync-health")).json() == {"healthy": True}

        fake_api.page_errors[1] = ExternalServiceError("down")
        response = api_client.get(reverse("sync-health"))

        assert response.status_code == 503

    def test_not_configured(self, api_client, settings):
        """Test a missing API key is reported as 503."""
        settings.LICENSE_SYNC = {"BASE_URL": "https://licenses.example.com", "API_KEY": ""}

        response = api_client.get(reverse("sync-health"))

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "NOT_CONFIGURED"

    def test_latest_and_recent_runs(self, api_client, now):
        """Test stored runs are listed newest first."""
        assert api_client.get(reverse("sync-run-latest")).status_code == 404

        repository = DjangoSyncRunRepository()
        older = SyncRun(started_at=now - timedelta(hours=2)).finish(now - timedelta(hours=2))
        newer = SyncRun(started_at=now, created=4).finish(now)
        async_to_sync(repository.save)(older)
        async_to_sync(repository.save)(newer)

        latest = api_client.get(reverse("sync-run-latest")).json()
        runs = api_client.get(reverse("sync-runs"), {"limit": 1}).json()

        assert latest["id"] == newer.id
        assert latest["created"] == 4
        assert [run["id"] for run in runs] == [newer.id]

    def test_recent_runs_invalid_limit(self, api_client):
        response = api_client.get(reverse("sync-runs"), {"limit": "many"})
        assert response.status_code == 400


@pytest.mark.django_db
@pytest.mark.integration
class TestHealthEndpoints:
    """Integration tests for health, readiness and metrics."""

    def test_health(self, client):
        assert client.get(reverse("health")).json()["status"] == "healthy"

    def test_ready(self, client):
        response = client.get(reverse("ready"))
        assert response.status_code == 200
        assert response.json()["checks"] == {"database": True, "cache": True}

    def test_metrics(self, client):
        response = client.get(reverse("metrics"))
        assert response.status_code == 200
        assert b"external_sync_runs_total" in response.content
