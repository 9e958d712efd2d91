"""
External sync configuration.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from core.infrastructure.retry import RetryPolicy

MAX_PAGE_SIZE = 1000


@dataclass(frozen=True)
class SyncConfig:
    """Settings for the external license sync."""

    base_url: str = ""
    api_key: Optional[str] = None
    page_size: int = 100
    timeout_seconds: float = 30.0
    user_agent: str = "License-Dashboard-Sync/1.0"
    max_pages: int = 1000
    retry_attempts: int = 3
    retry_initial_delay: float = 2.0
    retry_max_delay: float = 30.0
    retry_backoff_multiplier: float = 2.0
    circuit_failure_threshold: int = 5
    circuit_reset_timeout: float = 60.0
    circuit_success_threshold: int = 1
    lock_timeout: int = 3600
    max_recorded_errors: int = 50

    def __post_init__(self):
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ImproperlyConfigured(f"LICENSE_SYNC page size must be between 1 and {MAX_PAGE_SIZE}")
        if self.timeout_seconds <= 0:
            raise ImproperlyConfigured("LICENSE_SYNC timeout must be positive")
        if self.max_pages < 1:
            raise ImproperlyConfigured("LICENSE_SYNC max pages must be at least 1")

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retry_attempts,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            multiplier=self.retry_backoff_multiplier,
        )

    def require_api_key(self) -> str:
        """
        Return the API key.

        Raises:
            ImproperlyConfigured: If no key is configured
        """
        if not self.api_key:
            raise ImproperlyConfigured("LICENSE_SYNC['API_KEY'] is required for the external license API")
        if not self.base_url:
            raise ImproperlyConfigured("LICENSE_SYNC['BASE_URL'] is required for the external license API")
        return self.api_key

    @classmethod
    def from_settings(cls, overrides: Optional[Dict[str, Any]] = None) -> "SyncConfig":
        """Build from ``settings.LICENSE_SYNC``."""
        values = dict(getattr(settings, "LICENSE_SYNC", {}))
        values.update(overrides or {})
        return cls(
            base_url=(values.get("BASE_URL") or "").rstrip("/"),
            api_key=values.get("API_KEY") or None,
            page_size=int(values.get("PAGE_SIZE", 100)),
            timeout_seconds=float(values.get("TIMEOUT_SECONDS", 30)),
            user_agent=values.get("USER_AGENT", "License-Dashboard-Sync/1.0"),
            max_pages=int(values.get("MAX_PAGES", 1000)),
            retry_attempts=int(values.get("RETRY_ATTEMPTS", 3)),
            retry_initial_delay=float(values.get("RETRY_INITIAL_DELAY", 2)),
            retry_max_delay=float(values.get("RETRY_MAX_DELAY", 30)),
            retry_backoff_multiplier=float(values.get("RETRY_BACKOFF_MULTIPLIER", 2.0)),
            circuit_failure_threshold=int(values.get("CIRCUIT_FAILURE_THRESHOLD", 5)),
            circuit_reset_timeout=float(values.get("CIRCUIT_RESET_TIMEOUT", 60)),
            circuit_success_threshold=int(values.get("CIRCUIT_SUCCESS_THRESHOLD", 1)),
            lock_timeout=int(values.get("LOCK_TIMEOUT", 3600)),
            max_recorded_errors=int(values.get("MAX_RECORDED_ERRORS", 50)),
        )
