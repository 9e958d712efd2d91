"""
Unit tests for lifecycle and sync configuration.
"""

import pytest
from django.core.exceptions import ImproperlyConfigured

from external_sync.application.config import SyncConfig
from licenses.application.config import LifecycleConfig, NotificationConfig


class TestLifecycleConfig:
    """Tests for LifecycleConfig."""

    def test_reminder_tiers_are_disjoint(self):
        """Test tiers run widest first and each floor is the next threshold."""
        tiers = LifecycleConfig().reminder_tiers

        assert [(t.name, t.days, t.floor_days) for t in tiers] == [
            ("30days", 30, 7),
            ("7days", 7, 1),
            ("1day", 1, 0),
        ]

    def test_custom_thresholds(self):
        """Test custom tiers are ordered by threshold."""
        config = LifecycleConfig(reminder_thresholds={"3days": 3, "14days": 14})
        assert [t.name for t in config.reminder_tiers] == ["14days", "3days"]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"reminder_thresholds": {}},
            {"reminder_thresholds": {"a": 7, "b": 7}},
            {"reminder_thresholds": {"now": 0}},
            {"default_grace_period_days": -1},
        ],
    )
    def test_invalid(self, kwargs):
        """Test invalid configurations are rejected."""
        with pytest.raises(ImproperlyConfigured):
            LifecycleConfig(**kwargs)

    def test_from_settings(self, settings):
        """Test values are read from LICENSE_LIFECYCLE."""
        settings.LICENSE_LIFECYCLE = {
            "DEFAULT_GRACE_PERIOD_DAYS": "14",
            "ATTENTION_DAYS_THRESHOLD": 45,
        }

        config = LifecycleConfig.from_settings()

        assert config.default_grace_period_days == 14
        assert config.attention_days_threshold == 45
        assert len(config.reminder_tiers) == 3


class TestNotificationConfig:
    """Tests for NotificationConfig."""

    def test_from_settings(self, settings):
        """Test values come from LICENSE_NOTIFICATIONS."""
        settings.LICENSE_NOTIFICATIONS = {
            "ENABLED": False,
            "DEFAULT_RECIPIENT": "billing@example.com",
            "FROM_EMAIL": "licenses@example.com",
        }

        config = NotificationConfig.from_settings()

        assert config.enabled is False
        assert config.default_recipient == "billing@example.com"
        assert config.from_email == "licenses@example.com"


class TestSyncConfig:
    """Tests for SyncConfig."""

    def test_from_settings(self, settings):
        """Test values come from LICENSE_SYNC with the base URL normalised."""
        settings.LICENSE_SYNC = {
            "BASE_URL": "https://licenses.example.com/",
            "API_KEY": "k",
            "PAGE_SIZE": "250",
            "RETRY_ATTEMPTS": 5,
        }

        config = SyncConfig.from_settings()

        assert config.base_url == "https://licenses.example.com"
        assert config.page_size == 250
        assert config.retry_policy.max_retries == 5
        assert config.require_api_key() == "k"

    @pytest.mark.parametrize(
        "kwargs",
        [{"page_size": 0}, {"page_size": 1001}, {"timeout_seconds": 0}, {"max_pages": 0}],
    )
    def test_invalid(self, kwargs):
        """Test out of range values are rejected."""
        with pytest.raises(ImproperlyConfigured):
            SyncConfig(**kwargs)

    def test_missing_api_key(self):
        """Test the API key is required before calling the API."""
        with pytest.raises(ImproperlyConfigured):
            SyncConfig(base_url="https://licenses.example.com").require_api_key()
