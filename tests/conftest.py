"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timezone

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from licenses.application.config import LifecycleConfig, NotificationConfig
from licenses.application.services.license_lifecycle_service import LicenseLifecycleService
from licenses.application.services.license_notification_service import (
    LicenseNotificationService,
)
from licenses.domain.license import License
from licenses.infrastructure.repositories.django_license_repository import DjangoLicenseRepository
from tests.fakes import (
    FakeClock,
    FakeNotifier,
    InMemoryLicenseRepository,
    RecordingEventBus,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_license(**overrides) -> License:
    """A valid active license; keyword arguments override any field."""
    values = {
        "id": "lic-1",
        "dba": "Sunset Nails",
        "starts_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "zip": "90210",
        "contact_email": "owner@sunsetnails.example",
    }
    values.update(overrides)
    return License(**values)


@pytest.fixture(autouse=True)
def clear_cache():
    """Keep the single-flight lock from leaking between tests."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def clock():
    """Fixture for a fixed clock at NOW."""
    return FakeClock(NOW)


@pytest.fixture
def repository():
    """Fixture for the in-memory LicenseRepository."""
    return InMemoryLicenseRepository()


@pytest.fixture
def notifier():
    """Fixture for a recording notifier."""
    return FakeNotifier()


@pytest.fixture
def event_bus():
    """Fixture for a recording event bus."""
    return RecordingEventBus()


@pytest.fixture
def notification_service(notifier, clock):
    """Fixture for the notification dispatcher over the fake notifier."""
    return LicenseNotificationService(
        notifier=notifier,
        config=NotificationConfig(default_recipient="ops@example.com"),
        clock=clock,
    )


@pytest.fixture
def lifecycle_service(repository, notification_service, event_bus, clock):
    """Fixture for the lifecycle service over in-memory fakes."""
    return LicenseLifecycleService(
        repository=repository,
        notifications=notification_service,
        config=LifecycleConfig(),
        event_bus=event_bus,
        clock=clock,
    )


@pytest.fixture
def license_repository():
    """Fixture for the Django LicenseRepository."""
    return DjangoLicenseRepository()


@pytest.fixture
def api_client():
    """Fixture for API client."""
    return APIClient()
