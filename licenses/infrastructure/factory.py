"""
Wiring of the lifecycle service from Django settings.
"""
from licenses.application.config import LifecycleConfig, NotificationConfig
from licenses.application.services.license_lifecycle_service import LicenseLifecycleService
from licenses.application.services.license_notification_service import (
    LicenseNotificationService,
)
from licenses.infrastructure.notifiers import EmailNotifier
from licenses.infrastructure.repositories.django_license_repository import (
    DjangoLicenseRepository,
)


def build_notification_service() -> LicenseNotificationService:
    config = NotificationConfig.from_settings()
    return LicenseNotificationService(notifier=EmailNotifier(config.from_email), config=config)


def build_lifecycle_service() -> LicenseLifecycleService:
    """Lifecycle service backed by the Django repository and email notifier."""
    return LicenseLifecycleService(
        repository=DjangoLicenseRepository(),
        notifications=build_notification_service(),
        config=LifecycleConfig.from_settings(),
    )
