"""
Unit tests for the requests-based external license API client.
"""

from unittest.mock import Mock

import pytest
import requests
from django.core.exceptions import ImproperlyConfigured

from core.domain.exceptions import ExternalServiceError
from external_sync.application.config import SyncConfig
from external_sync.infrastructure.external_license_api import (
    LICENSES_PATH,
    RequestsExternalLicenseApi,
    is_retryable_status,
)

BASE_URL = "https://licenses.example.com"


def response(status_code=200, payload=None, invalid_json=False):
    mock = Mock()
    mock.status_code = status_code
    mock.ok = status_code < 400
    mock.text = "" if payload is None else str(payload)
    if invalid_json:
        mock.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        mock.json.return_value = payload
    return mock


@pytest.fixture
def session():
    session = requests.Session()
    session.get = Mock(return_value=response(payload=[]))
    return session


@pytest.fixture
def client(session):
    config = SyncConfig(base_url=BASE_URL, api_key="secret", timeout_seconds=5)
    return RequestsExternalLicenseApi(config, session=session)


class TestClientConfiguration:
    """Tests for client construction."""

    def test_headers(self, client, session):
        """Test the API key and user agent are sent on every call."""
        assert session.headers["x-api-key"] == "secret"
        assert session.headers["User-Agent"] == "License-Dashboard-Sync/1.0"
        assert session.headers["Accept"] == "application/json"

    @pytest.mark.parametrize(
        "config",
        [
            SyncConfig(base_url=BASE_URL),
            SyncConfig(api_key="secret"),
        ],
    )
    def test_missing_settings(self, config):
        """Test the client refuses to start without key or base URL."""
        with pytest.raises(ImproperlyConfigured):
            RequestsExternalLicenseApi(config)


class TestFetchPage:
    """Tests for page fetching."""

    @pytest.mark.asyncio
    async def test_envelope_with_meta(self, client, session):
        """Test the data/meta envelope is unwrapped."""
        session.get.return_value = response(
            payload={"data": [{"appid": "A"}], "meta": {"totalPages": 3, "total": 250}}
        )

        page = await client.fetch_page(2, 100)

        session.get.assert_called_once_with(
            f"{BASE_URL}{LICENSES_PATH}", params={"page": 2, "limit": 100}, timeout=5
        )
        assert page.records == [{"appid": "A"}]
        assert page.total_pages == 3
        assert page.total == 250
        assert page.has_more is True

    @pytest.mark.asyncio
    async def test_bare_list(self, client, session):
        """Test a bare list is accepted as a page."""
        session.get.return_value = response(payload=[{"appid": "A"}])

        page = await client.fetch_page(1, 10)

        assert page.records == [{"appid": "A"}]
        assert page.total is None
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, client, session):
        """Test an unknown payload shape is an error."""
        session.get.return_value = response(payload={"items": []})
        with pytest.raises(ExternalServiceError, match="Unexpected page format"):
            await client.fetch_page(1, 10)

    @pytest.mark.asyncio
    async def test_invalid_json(self, client, session):
        """Test an unparseable body is an error."""
        session.get.return_value = response(invalid_json=True)
        with pytest.raises(ExternalServiceError, match="Invalid JSON"):
            await client.fetch_page(1, 10)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code, retryable",
        [(500, True), (503, True), (429, True), (408, True), (401, False), (404, False)],
    )
    async def test_http_errors(self, client, session, status_code, retryable):
        """Test HTTP errors carry their status and retryability."""
        session.get.return_value = response(status_code=status_code, payload={"error": "x"})

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.fetch_page(1, 10)

        assert exc_info.value.status_code == status_code
        assert exc_info.value.retryable is retryable

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, retryable",
        [
            (requests.exceptions.Timeout("read timed out"), True),
            (requests.exceptions.ConnectionError("refused"), True),
            (requests.exceptions.InvalidURL("bad url"), False),
        ],
    )
    async def test_transport_errors(self, client, session, error, retryable):
        """Test transport failures map onto ExternalServiceError."""
        session.get.side_effect = error

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.fetch_page(1, 10)

        assert exc_info.value.retryable is retryable


class TestFetchByAppid:
    """Tests for single license lookups."""

    @pytest.mark.asyncio
    async def test_unwraps_data(self, client, session):
        """Test the data envelope is unwrapped and the appid is quoted."""
        session.get.return_value = response(payload={"data": {"appid": "A/1"}})

        record = await client.fetch_by_appid("A/1")

        assert record == {"appid": "A/1"}
        assert session.get.call_args[0][0] == f"{BASE_URL}{LICENSES_PATH}/A%2F1"

    @pytest.mark.asyncio
    async def test_not_found(self, client, session):
        """Test 404 means the license does not exist upstream."""
        session.get.return_value = response(status_code=404)
        assert await client.fetch_by_appid("missing") is None


class TestHealthCheck:
    """Tests for the health check."""

    @pytest.mark.asyncio
    async def test_healthy(self, client, session):
        assert await client.health_check() is True
        assert session.get.call_args[1]["params"] == {"page": 1, "limit": 1}

    @pytest.mark.asyncio
    async def test_unhealthy(self, client, session):
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        assert await client.health_check() is False


@pytest.mark.parametrize(
    "status_code, expected",
    [(500, True), (502, True), (429, True), (408, True), (400, False), (403, False)],
)
def test_is_retryable_status(status_code, expected):
    assert is_retryable_status(status_code) is expected
