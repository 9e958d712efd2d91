"""
Sync run repository port (interface).
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from external_sync.domain.sync_run import SyncRun


class SyncRunRepository(ABC):
    """Abstract repository for sync run summaries."""

    @abstractmethod
    async def save(self, run: SyncRun) -> SyncRun:
        """
        Save a sync run.

        Args:
            run: Finished sync run

        Returns:
            Saved sync run
        """
        pass

    @abstractmethod
    async def latest(self) -> Optional[SyncRun]:
        """Most recently started run, or None."""
        pass

    @abstractmethod
    async def recent(self, limit: int = 20) -> List[SyncRun]:
        """Most recent runs, newest first."""
        pass
