"""
Django implementation of SyncRunRepository port.
"""
from typing import List, Optional

from asgiref.sync import sync_to_async

from external_sync.domain.sync_run import SyncRun, SyncRunStatus
from external_sync.infrastructure.models import SyncRunRecord
from external_sync.ports.sync_run_repository import SyncRunRepository
from licenses.infrastructure.repositories.django_license_repository import persistence_errors


class DjangoSyncRunRepository(SyncRunRepository):
    """Django ORM implementation of SyncRunRepository."""

    def _to_domain(self, model: SyncRunRecord) -> SyncRun:
        return SyncRun(
            id=str(model.id),
            started_at=model.started_at,
            finished_at=model.finished_at,
            status=SyncRunStatus(model.status),
            dry_run=model.dry_run,
            pages_fetched=model.pages_fetched,
            fetched=model.fetched,
            created=model.created,
            updated=model.updated,
            unchanged=model.unchanged,
            validated=model.validated,
            failed=model.failed,
            errors=list(model.errors or []),
            message=model.message,
        )

    @sync_to_async
    @persistence_errors
    def save(self, run: SyncRun) -> SyncRun:
        model, _ = SyncRunRecord.objects.update_or_create(
            id=run.id,
            defaults={
                "status": str(run.status),
                "dry_run": run.dry_run,
                "started_at": run.started_at,
                "finished_at": run.finished_at,
                "pages_fetched": run.pages_fetched,
                "fetched": run.fetched,
                "created": run.created,
                "updated": run.updated,
                "unchanged": run.unchanged,
                "validated": run.validated,
                "failed": run.failed,
                "errors": run.errors,
                "message": run.message,
            },
        )
        return self._to_domain(model)

    @sync_to_async
    @persistence_errors
    def latest(self) -> Optional[SyncRun]:
        model = SyncRunRecord.objects.order_by("-started_at").first()
        return self._to_domain(model) if model else None

    @sync_to_async
    @persistence_errors
    def recent(self, limit: int = 20) -> List[SyncRun]:
        return [self._to_domain(m) for m in SyncRunRecord.objects.order_by("-started_at")[:limit]]
