"""
External license API port (interface).

Read-only access to the third-party license API.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ExternalLicensePage:
    """One page of external records plus whatever paging metadata came with it."""

    records: List[Dict[str, Any]]
    page: int
    limit: int
    total_pages: Optional[int] = None
    total: Optional[int] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_more(self) -> bool:
        """
        Whether another page should be requested.

        Uses ``total_pages``, then ``total``, and otherwise keeps going
        while pages come back full.
        """
        if not self.records:
            return False
        if self.total_pages is not None:
            return self.page < self.total_pages
        if self.total is not None:
            return self.page * self.limit < self.total
        return len(self.records) >= self.limit


class ExternalLicenseApi(ABC):
    """Abstract client for the external license API."""

    @abstractmethod
    async def fetch_page(self, page: int, limit: int) -> ExternalLicensePage:
        """
        Fetch one page of licenses.

        Args:
            page: 1-based page number
            limit: Page size

        Returns:
            ExternalLicensePage

        Raises:
            ExternalServiceError: On transport or HTTP errors
        """
        pass

    @abstractmethod
    async def fetch_by_appid(self, appid: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a single license by appid.

        Returns:
            The raw record, or None if the API does not know it
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the API answers."""
        pass
