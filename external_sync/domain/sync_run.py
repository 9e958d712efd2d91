"""
Sync run summary.

One SyncRun is produced per external sync invocation, whatever happens,
and persisted for operational visibility.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SyncRunStatus(Enum):
    """Terminal status of a sync run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"
    ABORTED = "aborted"

    def __str__(self) -> str:
        return self.value


@dataclass
class SyncRun:
    """Counters and outcome of one sync run."""

    started_at: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    dry_run: bool = False
    finished_at: Optional[datetime] = None
    status: Optional[SyncRunStatus] = None
    pages_fetched: int = 0
    fetched: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    validated: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    message: str = ""
    max_recorded_errors: int = 50

    @property
    def succeeded(self) -> int:
        return self.created + self.updated + self.unchanged + self.validated

    def record_error(self, item: Any, error: str, code: Optional[str] = None) -> None:
        """Count a failure, keeping at most ``max_recorded_errors`` details."""
        self.failed += 1
        if len(self.errors) < self.max_recorded_errors:
            self.errors.append({"item": None if item is None else str(item), "error": error, "code": code})

    def finish(self, finished_at: datetime, aborted: bool = False) -> "SyncRun":
        """
        Close the run and derive its status.

        Zero successes with any failure is a failure; some of each is partial.
        """
        self.finished_at = finished_at
        if aborted:
            self.status = SyncRunStatus.ABORTED
        elif self.failed and not self.succeeded:
            self.status = SyncRunStatus.FAILED
        elif self.failed:
            self.status = SyncRunStatus.PARTIAL
        else:
            self.status = SyncRunStatus.SUCCESS
        return self

    def fail(self, finished_at: datetime, message: str) -> "SyncRun":
        """Close a run that stopped on an unexpected error, whatever it counted so far."""
        self.finished_at = finished_at
        self.status = SyncRunStatus.FAILED
        self.message = message
        return self

    def skip(self, finished_at: datetime, message: str) -> "SyncRun":
        self.finished_at = finished_at
        self.status = SyncRunStatus.SKIPPED
        self.message = message
        return self

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": str(self.status) if self.status else None,
            "dry_run": self.dry_run,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "pages_fetched": self.pages_fetched,
            "fetched": self.fetched,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "validated": self.validated,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": self.errors,
            "message": self.message,
        }
