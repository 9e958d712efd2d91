"""
Django management command to run scheduled lifecycle operations.

This command should be run periodically (e.g., via cron) when Celery beat
is not available.
"""

import logging

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from licenses.infrastructure.factory import build_lifecycle_service

logger = logging.getLogger(__name__)

OPERATIONS = ("reminders", "suspensions", "grace-periods")


class Command(BaseCommand):
    """Command to run license lifecycle operations."""

    help = "Send renewal reminders, suspend expired licenses and backfill grace periods"

    def add_arguments(self, parser):
        """Add command arguments."""
        parser.add_argument(
            "--operation",
            choices=OPERATIONS + ("all",),
            default="all",
            help="Lifecycle operation to run",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Dry run mode - list affected licenses without changing them",
        )

    def handle(self, *args, **options):
        """Execute the command."""
        service = build_lifecycle_service()
        operation = options["operation"]
        selected = OPERATIONS if operation == "all" else (operation,)

        if options["dry_run"]:
            # pylint: disable=no-member
            self.stdout.write(self.style.WARNING("DRY RUN - No changes will be made"))
            async_to_sync(self._preview)(service, selected)
            return

        runners = {
            "reminders": service.process_expiring_licenses,
            "suspensions": service.process_expired_licenses,
            "grace-periods": service.update_grace_periods,
        }
        for name in selected:
            try:
                result = async_to_sync(runners[name])()
            except Exception as e:
                logger.error("Lifecycle operation %s failed: %s", name, e, exc_info=True)
                raise CommandError(f"{name} failed: {e}") from e
            # pylint: disable=no-member
            self.stdout.write(self.style.SUCCESS(f"{name}: {result.to_dict()}"))

    async def _preview(self, service, selected):
        repository = service.repository
        now = timezone.now()
        if "reminders" in selected:
            for tier in service.config.reminder_tiers:
                licenses = await repository.find_licenses_needing_reminders(tier, now)
                self.stdout.write(f"{tier.name}: {len(licenses)} license(s) would be reminded")
                for license in licenses[:10]:
                    self.stdout.write(f"  - {license.id} {license.dba} expires {license.expiration_date}")
        if "suspensions" in selected:
            licenses = await repository.find_expired_licenses_for_suspension(now)
            self.stdout.write(f"{len(licenses)} license(s) would be suspended")
            for license in licenses[:10]:
                self.stdout.write(
                    f"  - {license.id} {license.dba} grace ended {license.effective_grace_period_end}"
                )
        if "grace-periods" in selected:
            licenses = await repository.find_licenses_missing_grace_period()
            self.stdout.write(f"{len(licenses)} license(s) would get a grace period end")
