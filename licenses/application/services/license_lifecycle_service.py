"""
License lifecycle service.

Orchestrates scheduled lifecycle operations: renewal reminders,
auto-suspension, grace period backfill, and the manual renew, extend,
reactivate and cancel actions.

Batch operations are sequential folds over a repository query. A failing
record is logged and reported in the run summary without stopping the
batch; only failures that invalidate the whole batch propagate.
"""
import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from django.utils import timezone

from core.domain.batch import BatchFailure, CancellationToken, fold_batch
from core.domain.events import DomainEvent, EventBus
from core.domain.exceptions import InvalidTransitionError, LicenseNotFoundError
from core.domain.value_objects import LicenseStatus, LicenseTerm
from core.infrastructure.events import event_bus as default_event_bus
from core.metrics import (
    lifecycle_records_total,
    lifecycle_run_duration_seconds,
    lifecycle_runs_total,
)
from licenses.application.config import LifecycleConfig
from licenses.application.dto.lifecycle_dto import (
    AttentionReport,
    GracePeriodRunResult,
    ReminderRunResult,
    RenewalOptions,
    SuspensionRunResult,
)
from licenses.application.services.license_notification_service import (
    LicenseNotificationService,
)
from licenses.domain import renewal_history
from licenses.domain.events import LicenseRenewed
from licenses.domain.license import License, add_months
from licenses.domain.sync import LifecycleContext
from licenses.ports.license_repository import LicenseRepository

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class LicenseLifecycleService:
    """Automated and manual lifecycle operations on licenses."""

    def __init__(
        self,
        repository: LicenseRepository,
        notifications: LicenseNotificationService,
        config: Optional[LifecycleConfig] = None,
        event_bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the service.

        Args:
            repository: License store
            notifications: Notification dispatcher
            config: Thresholds and defaults
            event_bus: Receives domain events after state is persisted
            clock: Returns the current aware datetime
        """
        self.repository = repository
        self.notifications = notifications
        self.config = config or LifecycleConfig()
        self.event_bus = event_bus or default_event_bus
        self.clock = clock or timezone.now

    # Scheduled operations

    async def process_expiring_licenses(
        self, cancellation: Optional[CancellationToken] = None
    ) -> ReminderRunResult:
        """
        Send renewal reminders for every configured tier.

        Each license gets at most one reminder per tier and cycle. A failing
        reminder or tier query is recorded and the run moves on.

        Args:
            cancellation: Optional token checked between licenses

        Returns:
            ReminderRunResult with the number of reminders sent
        """
        logger.info("Starting license expiration check")
        started = time.monotonic()
        result = ReminderRunResult()

        for tier in self.config.reminder_tiers:
            if cancellation is not None and cancellation.cancelled:
                result.aborted = True
                break
            try:
                licenses = await self.repository.find_licenses_needing_reminders(
                    tier, self.clock()
                )
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error(
                    "Error querying %s reminders: %s", tier.name, e, exc_info=True
                )
                result.failures.append(
                    BatchFailure(item=tier.name, error=str(e), error_code=getattr(e, "code", None))
                )
                continue

            batch = await fold_batch(
                licenses,
                lambda license, tier=tier: self.send_renewal_reminder(license, tier.name),
                cancellation,
                describe=lambda license: license.id,
            )
            sent = sum(1 for was_sent in batch.successes if was_sent)
            result.per_tier[tier.name] = sent
            result.processed += sent
            result.failures.extend(batch.failures)
            if batch.aborted:
                result.aborted = True
                result.remaining += batch.remaining
                break

        self._record_run("reminders", started, result.processed, len(result.failures), result.aborted)
        logger.info(
            "License expiration check completed: %d reminder(s) sent, %d failure(s)",
            result.processed,
            len(result.failures),
        )
        return result

    async def send_renewal_reminder(
        self, license: License, reminder_type: str, description: Optional[str] = None
    ) -> bool:
        """
        Send one reminder tier for one license.

        The license is re-read first, so a tier that was already recorded is
        not sent again.

        Args:
            license: License to remind
            reminder_type: Tier name
            description: Optional human readable description

        Returns:
            True if the reminder was sent, False if it had been sent already

        Raises:
            LicenseNotFoundError: If the license disappeared
        """
        current = await self._get(license.id)
        if reminder_type in current.renewal_reminders_sent:
            logger.debug("Reminder %s already sent for license %s", reminder_type, current.id)
            return False

        now = self.clock()
        description = description or f"{reminder_type} renewal reminder"
        marked = current.mark_renewal_reminder_sent(reminder_type, now)
        await self.repository.update_renewal_reminders(
            marked.id, marked.renewal_reminders_sent, marked.last_renewal_reminder
        )
        await self.repository.add_renewal_history(
            marked.id,
            renewal_history.reminder_action(reminder_type),
            {
                "reminder_type": reminder_type,
                "description": description,
                "days_until_expiry": marked.days_until_expiration(now),
            },
            actor=SYSTEM_ACTOR,
            timestamp=now,
        )
        await self.notifications.send_renewal_reminder(marked, reminder_type, description)
        logger.info("Sent %s for license %s", description, marked.id)
        return True

    async def process_expired_licenses(
        self, cancellation: Optional[CancellationToken] = None
    ) -> SuspensionRunResult:
        """
        Suspend licenses past their grace period.

        The suspension is one atomic repository call and any failure there
        propagates. History entries, events and notifications follow per
        license; a failed notification never undoes a suspension.

        Args:
            cancellation: Optional token checked between post-suspension records

        Returns:
            SuspensionRunResult
        """
        logger.info("Starting expired license suspension check")
        started = time.monotonic()
        now = self.clock()
        licenses = await self.repository.find_expired_licenses_for_suspension(now)

        if not licenses:
            logger.info("No licenses found for auto-suspension")
            self._record_run("suspensions", started, 0, 0, False)
            return SuspensionRunResult()

        reason = self.config.auto_suspend_reason
        ids = [license.id for license in licenses]
        logger.info("Suspending %d expired license(s)", len(ids))
        try:
            suspended = await self.repository.suspend_expired_licenses(ids, reason, now)
        except Exception:
            lifecycle_runs_total.labels(operation="suspensions", outcome="failed").inc()
            logger.error("Bulk suspension of %d license(s) failed", len(ids), exc_info=True)
            raise

        result = SuspensionRunResult(suspended=suspended)
        if suspended < len(ids):
            licenses = await self._suspended_by_run(licenses, now)

        async def follow_up(license: License) -> bool:
            suspended_license, event = license.suspend(reason, now)
            await self.repository.add_renewal_history(
                license.id,
                renewal_history.AUTO_SUSPENDED,
                {
                    "reason": reason,
                    "previous_state": str(license.lifecycle_state(now)),
                    "new_state": "suspended",
                    "grace_period_days": license.grace_period_days,
                },
                actor=SYSTEM_ACTOR,
                timestamp=now,
            )
            await self._publish(event)
            notified = await self.notifications.send_license_suspended(suspended_license, reason)
            return notified.success

        batch = await fold_batch(
            licenses, follow_up, cancellation, describe=lambda license: license.id
        )
        result.notified = sum(1 for ok in batch.successes if ok)
        result.notification_failures = sum(1 for ok in batch.successes if not ok)
        result.failures = batch.failures
        result.aborted = batch.aborted
        result.remaining = batch.remaining

        self._record_run("suspensions", started, suspended, len(batch.failures), batch.aborted)
        logger.info(
            "Expired license suspension completed: requested=%d suspended=%d notified=%d",
            len(ids),
            suspended,
            result.notified,
        )
        return result

    async def update_grace_periods(
        self, cancellation: Optional[CancellationToken] = None
    ) -> GracePeriodRunResult:
        """
        Backfill missing grace period ends, one license at a time.

        Args:
            cancellation: Optional token checked between licenses

        Returns:
            GracePeriodRunResult
        """
        logger.info("Updating grace periods for licenses")
        started = time.monotonic()
        licenses = await self.repository.find_licenses_missing_grace_period()

        async def backfill(license: License) -> bool:
            if license.grace_period_end is not None:
                return False
            await self.repository.update(
                license.id, {"grace_period_end": license.calculate_grace_period_end()}
            )
            return True

        batch = await fold_batch(
            licenses, backfill, cancellation, describe=lambda license: license.id
        )
        result = GracePeriodRunResult(
            updated=sum(1 for changed in batch.successes if changed),
            skipped=sum(1 for changed in batch.successes if not changed),
            failures=batch.failures,
            aborted=batch.aborted,
            remaining=batch.remaining,
        )
        self._record_run("grace_periods", started, result.updated, len(batch.failures), batch.aborted)
        logger.info("Grace periods updated for %d license(s)", result.updated)
        return result

    async def get_licenses_requiring_attention(
        self,
        include_expiring_soon: bool = True,
        include_expired: bool = True,
        include_suspended: bool = True,
        days_threshold: Optional[int] = None,
    ) -> AttentionReport:
        """
        Collect expiring, expired and suspended licenses.

        A failing category query is logged and reported as an empty list.
        """
        now = self.clock()
        days = days_threshold or self.config.attention_days_threshold
        report = AttentionReport()
        queries = (
            ("expiring_soon", include_expiring_soon, lambda: self.repository.find_expiring_licenses(days, now)),
            ("expired", include_expired, lambda: self.repository.find_expired_licenses_for_suspension(now)),
            ("suspended", include_suspended, self.repository.find_suspended_licenses),
        )
        for category, included, query in queries:
            if not included:
                continue
            try:
                setattr(report, category, await query())
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning("Failed to fetch %s licenses, returning empty list: %s", category, e)
                report.errors[category] = str(e)

        logger.info(
            "Licenses requiring attention: expiring_soon=%d expired=%d suspended=%d",
            len(report.expiring_soon),
            len(report.expired),
            len(report.suspended),
        )
        return report

    # Manual operations

    async def extend_license_expiration(
        self, license_id: str, new_expiration: datetime, context: LifecycleContext
    ) -> License:
        """
        Move a license's expiration date.

        Raises:
            LicenseNotFoundError: If the license does not exist
            InvalidLicenseStateError: If the date is not after the start
        """
        license = await self._get(license_id)
        now = self._now(context)
        _, event = license.extend(new_expiration, now)
        logger.info(
            "Extending license %s expiration to %s (actor=%s)",
            license_id,
            new_expiration.isoformat(),
            context.actor,
        )
        updated = await self.repository.extend_license_expiration(license_id, new_expiration, context)
        await self.repository.add_renewal_history(
            license_id,
            renewal_history.EXPIRATION_EXTENDED,
            {
                "previous_expiration": license.expiration_date.isoformat(),
                "new_expiration": new_expiration.isoformat(),
                "reason": context.reason or "Manual extension",
            },
            actor=context.actor,
            timestamp=now,
        )
        await self._publish(event)
        await self.notifications.send_license_extended(updated, context)
        return updated

    async def renew_license(
        self,
        license_id: str,
        options: Optional[RenewalOptions] = None,
        context: Optional[LifecycleContext] = None,
    ) -> License:
        """
        Renew a license for another term.

        Without an explicit date the expiration moves one calendar term past
        the current expiration. Reminder tracking is cleared only when the
        license was already expired, and a suspended license is reactivated.

        Raises:
            LicenseNotFoundError: If the license does not exist
            InvalidTransitionError: If the license is cancelled
        """
        options = options or RenewalOptions()
        context = context or LifecycleContext()
        license = await self._get(license_id)
        if license.is_cancelled:
            raise InvalidTransitionError(f"Cannot renew cancelled license {license_id}")

        now = self._now(context)
        was_expired = license.is_expired(now)
        previous_expiration = license.expiration_date
        months = 12 if license.term == LicenseTerm.YEARLY else 1
        new_expiration = options.new_expiration_date or add_months(previous_expiration, months)

        updated = await self.extend_license_expiration(
            license_id, new_expiration, replace(context, reason="License renewed", now=now)
        )
        if was_expired:
            await self.repository.update_renewal_reminders(license_id, [], None)
            updated = updated.reset_renewal_reminders()
        if license.is_suspended:
            updated = await self.reactivate_license(
                license_id, replace(context, reason="Reactivated by renewal", now=now)
            )

        await self.repository.add_renewal_history(
            license_id,
            renewal_history.LICENSE_RENEWED,
            {
                "previous_expiration": previous_expiration.isoformat(),
                "new_expiration": new_expiration.isoformat(),
                "renewal_term": str(license.term),
                "was_expired": was_expired,
            },
            actor=context.actor,
            timestamp=now,
        )
        await self._publish(
            LicenseRenewed(
                license_id=license_id,
                previous_expiration=previous_expiration,
                new_expiration=new_expiration,
                was_expired=was_expired,
                occurred_at=now,
            )
        )
        await self.notifications.send_license_renewed(updated, context)
        logger.info(
            "License %s renewed: %s -> %s",
            license_id,
            previous_expiration.isoformat(),
            new_expiration.isoformat(),
        )
        return updated

    async def reactivate_license(self, license_id: str, context: LifecycleContext) -> License:
        """
        Reactivate a suspended, expired or cancelled license.

        A cancelled license publishes LicenseActivated, any other
        LicenseReactivated. A grace period that already ended restarts, so
        the next suspension run does not pick the license up again.

        Raises:
            LicenseNotFoundError: If the license does not exist
            InvalidTransitionError: If the license is active or only expiring soon
        """
        license = await self._get(license_id)
        now = self._now(context)
        previous_state = license.lifecycle_state(now)
        _, event = license.reactivate(now)
        logger.info("Reactivating license %s from %s (actor=%s)", license_id, previous_state, context.actor)
        updated = await self.repository.reactivate_license(license_id, replace(context, now=now))
        await self.repository.add_renewal_history(
            license_id,
            renewal_history.LICENSE_REACTIVATED,
            {
                "previous_state": str(previous_state),
                "new_state": str(LicenseStatus.ACTIVE),
                "reason": context.reason or "Manual reactivation",
            },
            actor=context.actor,
            timestamp=now,
        )
        await self._publish(event)
        await self.notifications.send_license_reactivated(updated, context)
        return updated

    async def cancel_license(self, license_id: str, context: LifecycleContext) -> License:
        """
        Cancel a license.

        Raises:
            LicenseNotFoundError: If the license does not exist
            InvalidTransitionError: If the license is already cancelled
        """
        license = await self._get(license_id)
        now = self._now(context)
        cancelled, event = license.cancel(context.reason, now)
        updated = await self.repository.update(
            license_id, {"status": cancelled.status, "cancel_date": cancelled.cancel_date}
        )
        await self.repository.add_renewal_history(
            license_id,
            renewal_history.LICENSE_CANCELLED,
            {"reason": context.reason},
            actor=context.actor,
            timestamp=now,
        )
        await self._publish(event)
        logger.info("License %s cancelled (actor=%s)", license_id, context.actor)
        return updated

    # Helpers

    async def _get(self, license_id: str) -> License:
        license = await self.repository.find_by_id(license_id)
        if license is None:
            raise LicenseNotFoundError(f"License {license_id} not found")
        return license

    async def _suspended_by_run(self, licenses: List[License], now: datetime) -> List[License]:
        """Keep the licenses the bulk call suspended, dropping concurrent changes."""
        kept = []
        for license in licenses:
            current = await self.repository.find_by_id(license.id)
            if current is not None and current.is_suspended and current.suspended_at == now:
                kept.append(license)
            else:
                logger.warning(
                    "License %s changed before suspension, skipping follow-up", license.id
                )
        return kept

    def _now(self, context: LifecycleContext) -> datetime:
        return context.now or self.clock()

    async def _publish(self, event: DomainEvent) -> None:
        await self.event_bus.publish(event)

    @staticmethod
    def _record_run(operation: str, started: float, succeeded: int, failed: int, aborted: bool) -> None:
        outcome = "aborted" if aborted else ("partial" if failed else "success")
        lifecycle_runs_total.labels(operation=operation, outcome=outcome).inc()
        lifecycle_records_total.labels(operation=operation, result="success").inc(succeeded)
        lifecycle_records_total.labels(operation=operation, result="failed").inc(failed)
        lifecycle_run_duration_seconds.labels(operation=operation).observe(time.monotonic() - started)
