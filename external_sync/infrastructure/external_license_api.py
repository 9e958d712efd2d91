"""
Requests-based client for the external license API.

Every call carries the API key header and a timeout. Transport and HTTP
failures surface as ExternalServiceError flagged retryable for timeouts,
connection errors, 408, 429 and 5xx responses.
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests
from asgiref.sync import sync_to_async

from core.domain.exceptions import ExternalServiceError
from core.metrics import external_requests_total
from external_sync.application.config import SyncConfig
from external_sync.ports.external_license_api import ExternalLicenseApi, ExternalLicensePage

logger = logging.getLogger(__name__)

LICENSES_PATH = "/api/v1/licenses"
RETRYABLE_STATUS_CODES = {408, 429}


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


class RequestsExternalLicenseApi(ExternalLicenseApi):
    """External license API over a shared requests session."""

    def __init__(self, config: SyncConfig, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            config: Sync settings; the API key is required
            session: Optional session, injectable for tests

        Raises:
            ImproperlyConfigured: If the API key or base URL is missing
        """
        api_key = config.require_api_key()
        self.base_url = config.base_url.rstrip("/")
        self.timeout = config.timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "x-api-key": api_key,
                "User-Agent": config.user_agent,
                "Accept": "application/json",
            }
        )

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None, allow_404: bool = False) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            external_requests_total.labels(outcome="timeout").inc()
            raise ExternalServiceError(f"Timeout calling {path}: {e}", retryable=True) from e
        except requests.exceptions.ConnectionError as e:
            external_requests_total.labels(outcome="connection_error").inc()
            raise ExternalServiceError(f"Cannot reach external license API: {e}", retryable=True) from e
        except requests.exceptions.RequestException as e:
            external_requests_total.labels(outcome="error").inc()
            raise ExternalServiceError(f"Request to {path} failed: {e}") from e

        if allow_404 and response.status_code == 404:
            external_requests_total.labels(outcome="not_found").inc()
            return None
        if not response.ok:
            external_requests_total.labels(outcome=f"http_{response.status_code}").inc()
            raise ExternalServiceError(
                f"HTTP {response.status_code} from {path}: {response.text[:200]}",
                status_code=response.status_code,
                retryable=is_retryable_status(response.status_code),
            )
        external_requests_total.labels(outcome="success").inc()
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(f"Invalid JSON from {path}") from e

    def _fetch_page(self, page: int, limit: int) -> ExternalLicensePage:
        payload = self._get(LICENSES_PATH, params={"page": page, "limit": limit})
        if isinstance(payload, list):
            return ExternalLicensePage(records=payload, page=page, limit=limit)
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise ExternalServiceError(f"Unexpected page format from {LICENSES_PATH}")
        meta = payload.get("meta") or {}
        total_pages = meta.get("totalPages")
        total = meta.get("total")
        return ExternalLicensePage(
            records=payload["data"],
            page=page,
            limit=limit,
            total_pages=int(total_pages) if total_pages else None,
            total=int(total) if total is not None else None,
            meta=meta,
        )

    def _fetch_by_appid(self, appid: str) -> Optional[Dict[str, Any]]:
        payload = self._get(f"{LICENSES_PATH}/{quote(appid, safe='')}", allow_404=True)
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            return payload["data"]
        return payload

    async def fetch_page(self, page: int, limit: int) -> ExternalLicensePage:
        logger.debug("Fetching external licenses page %d (limit %d)", page, limit)
        return await sync_to_async(self._fetch_page, thread_sensitive=False)(page, limit)

    async def fetch_by_appid(self, appid: str) -> Optional[Dict[str, Any]]:
        return await sync_to_async(self._fetch_by_appid, thread_sensitive=False)(appid)

    async def health_check(self) -> bool:
        try:
            await self.fetch_page(1, 1)
        except ExternalServiceError as e:
            logger.warning("External license API health check failed: %s", e)
            return False
        return True
