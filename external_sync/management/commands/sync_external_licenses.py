"""
Django management command to sync licenses from the external license API.
"""

import logging

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from external_sync.domain.sync_run import SyncRunStatus
from external_sync.infrastructure.factory import build_sync_engine

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Command to run an external license sync."""

    help = "Fetch licenses from the external license API and upsert them"

    def add_arguments(self, parser):
        """Add command arguments."""
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Fetch and validate records without writing licenses",
        )
        parser.add_argument(
            "--max-pages",
            type=int,
            default=None,
            help="Stop after this many pages",
        )
        parser.add_argument(
            "--health-check",
            action="store_true",
            help="Only check that the external API answers",
        )

    def handle(self, *args, **options):
        """Execute the command."""
        if options["max_pages"] is not None and options["max_pages"] < 1:
            raise CommandError("--max-pages must be at least 1")

        engine = build_sync_engine()
        if options["health_check"]:
            if not async_to_sync(engine.health_check)():
                raise CommandError("External license API is not healthy")
            # pylint: disable=no-member
            self.stdout.write(self.style.SUCCESS("External license API is healthy"))
            return

        if options["dry_run"]:
            # pylint: disable=no-member
            self.stdout.write(self.style.WARNING("DRY RUN - No licenses will be written"))

        run = async_to_sync(engine.sync)(dry_run=options["dry_run"], max_pages=options["max_pages"])
        summary = (
            f"Sync {run.status.value}: pages={run.pages_fetched} fetched={run.fetched} "
            f"created={run.created} updated={run.updated} unchanged={run.unchanged} "
            f"validated={run.validated} failed={run.failed}"
        )
        for error in run.errors[:10]:
            self.stdout.write(f"  - {error['item']}: {error['error']}")
        if run.status == SyncRunStatus.FAILED:
            raise CommandError(summary)
        # pylint: disable=no-member
        style = self.style.SUCCESS if run.status == SyncRunStatus.SUCCESS else self.style.WARNING
        self.stdout.write(style(summary))
