"""
Django implementation of LicenseRepository port.

This adapter converts between domain entities and Django ORM models.
"""
import functools
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from asgiref.sync import sync_to_async
from django.db import DatabaseError
from django.utils import timezone

from core.domain.batch import BatchFailure
from core.domain.exceptions import (
    DomainException,
    LicenseNotFoundError,
    PersistenceError,
)
from core.domain.value_objects import (
    LicensePlan,
    LicenseStatus,
    LicenseTerm,
    ReminderTier,
)
from core.infrastructure.database import atomic_batch
from licenses.domain.license import License
from licenses.domain.renewal_history import RenewalHistoryEntry
from licenses.domain.sync import LifecycleContext, SyncedLicense, UpsertResult
from licenses.infrastructure.models import License as LicenseModel
from licenses.infrastructure.models import RenewalHistoryEntry as RenewalHistoryModel
from licenses.ports.license_repository import LicenseRepository

logger = logging.getLogger(__name__)

EXTERNAL_SYNC_STATUS = "synced"


def persistence_errors(func):
    """Surface database failures as PersistenceError."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DatabaseError as e:
            logger.error("%s failed: %s", func.__name__, e, exc_info=True)
            raise PersistenceError(f"{func.__name__} failed: {e}") from e

    return wrapper


class DjangoLicenseRepository(LicenseRepository):
    """
    Django ORM implementation of LicenseRepository.

    This adapter:
    1. Converts Django models to domain entities
    2. Converts domain entities to Django models
    3. Implements repository interface
    """

    def _queryset(self):
        return LicenseModel.objects.prefetch_related("renewal_history")

    def _active_queryset(self):
        return self._queryset().filter(
            status=LicenseStatus.ACTIVE.value, suspended_at__isnull=True
        )

    def _history_to_domain(self, model: RenewalHistoryModel) -> RenewalHistoryEntry:
        return RenewalHistoryEntry(
            license_id=model.license_id,
            action=model.action,
            timestamp=model.timestamp,
            metadata=model.metadata,
            actor=model.actor,
        )

    def _to_domain(self, model: LicenseModel) -> License:
        """
        Convert Django model to domain entity.

        Args:
            model: Django License model

        Returns:
            License domain entity
        """
        return License(
            id=model.id,
            dba=model.dba,
            starts_at=model.starts_at,
            zip=model.zip,
            plan=LicensePlan(model.plan),
            term=LicenseTerm(model.term),
            status=LicenseStatus(model.status),
            cancel_date=model.cancel_date,
            seats_total=model.seats_total,
            seats_used=model.seats_used,
            last_payment=model.last_payment,
            sms_purchased=model.sms_purchased,
            sms_sent=model.sms_sent,
            sms_balance_override=model.sms_balance,
            agents=model.agents,
            agents_cost=model.agents_cost,
            notes=model.notes,
            expires_at=model.expires_at,
            renewal_reminders_sent=tuple(model.renewal_reminders_sent or ()),
            last_renewal_reminder=model.last_renewal_reminder,
            grace_period_days=model.grace_period_days,
            grace_period_end=model.grace_period_end,
            auto_suspend_enabled=model.auto_suspend_enabled,
            suspended_at=model.suspended_at,
            suspension_reason=model.suspension_reason,
            reactivated_at=model.reactivated_at,
            appid=model.appid,
            countid=model.countid,
            mid=model.mid,
            license_type=model.license_type,
            package=model.package,
            contact_email=model.contact_email,
            external_sync_status=model.external_sync_status,
            last_external_sync=model.last_external_sync,
            renewal_history=tuple(
                self._history_to_domain(entry) for entry in model.renewal_history.all()
            ),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _model_values(self, license: License) -> Dict[str, Any]:
        """Column values for a license entity."""
        now = timezone.now()
        return {
            "dba": license.dba,
            "zip": license.zip or "",
            "plan": license.plan.value,
            "term": license.term.value,
            "status": license.status.value,
            "starts_at": license.starts_at,
            "cancel_date": license.cancel_date,
            "expires_at": license.expiration_date,
            "seats_total": license.seats_total,
            "seats_used": license.seats_used,
            "last_payment": license.last_payment,
            "sms_purchased": license.sms_purchased,
            "sms_sent": license.sms_sent,
            "sms_balance": (
                int(license.sms_balance_override) if license.has_sms_balance_override else None
            ),
            "agents": license.agents,
            "agents_cost": license.agents_cost,
            "notes": license.notes or "",
            "renewal_reminders_sent": list(license.renewal_reminders_sent),
            "last_renewal_reminder": license.last_renewal_reminder,
            "grace_period_days": license.grace_period_days,
            "grace_period_end": license.grace_period_end,
            "auto_suspend_enabled": license.auto_suspend_enabled,
            "suspended_at": license.suspended_at,
            "suspension_reason": license.suspension_reason,
            "reactivated_at": license.reactivated_at,
            "appid": license.appid,
            "countid": license.countid,
            "mid": license.mid,
            "license_type": license.license_type,
            "package": license.package,
            "contact_email": license.contact_email,
            "external_sync_status": license.external_sync_status,
            "last_external_sync": license.last_external_sync,
            "created_at": license.created_at or now,
            "updated_at": license.updated_at or now,
        }

    def _get_model(self, license_id: str) -> LicenseModel:
        try:
            return self._queryset().get(id=license_id)
        except LicenseModel.DoesNotExist:
            raise LicenseNotFoundError(f"License {license_id} not found")

    def _write(self, model: LicenseModel, license: License, fields: Sequence[str]) -> License:
        values = self._model_values(license)
        for name in fields:
            setattr(model, name, values[name])
        model.save(update_fields=list(fields))
        return self._to_domain(model)

    @sync_to_async
    @persistence_errors
    def find_by_id(self, license_id: str) -> Optional[License]:
        """
        Find a license by ID.

        Args:
            license_id: License identifier

        Returns:
            License entity or None if not found
        """
        try:
            return self._to_domain(self._queryset().get(id=license_id))
        except LicenseModel.DoesNotExist:
            return None

    @sync_to_async
    @persistence_errors
    def save(self, license: License) -> License:
        """
        Save a license entity.

        Args:
            license: License entity to save

        Returns:
            Saved license entity
        """
        model, _ = LicenseModel.objects.update_or_create(
            id=license.id, defaults=self._model_values(license)
        )
        return self._to_domain(self._queryset().get(id=model.id))

    @sync_to_async
    @persistence_errors
    def update(self, license_id: str, patch: Dict[str, Any]) -> License:
        """
        Apply a partial update through the entity so invariants are checked.

        Args:
            license_id: License identifier
            patch: License attribute names mapped to new values

        Returns:
            Updated license entity
        """
        model = self._get_model(license_id)
        patched = replace(self._to_domain(model), **patch, updated_at=timezone.now())
        columns = {"sms_balance" if name == "sms_balance_override" else name for name in patch}
        columns.update({"updated_at", "expires_at"})
        return self._write(model, patched, sorted(columns))

    @sync_to_async
    @persistence_errors
    def find_expiring_licenses(self, days_threshold: int, now: datetime) -> List[License]:
        models = self._active_queryset().filter(
            expires_at__gt=now, expires_at__lte=now + timedelta(days=days_threshold)
        )
        licenses = [self._to_domain(model) for model in models]
        return [lic for lic in licenses if lic.is_expiring_soon(days_threshold, now)]

    @sync_to_async
    @persistence_errors
    def find_expired_licenses_for_suspension(self, now: datetime) -> List[License]:
        models = self._active_queryset().filter(auto_suspend_enabled=True, expires_at__lt=now)
        licenses = [self._to_domain(model) for model in models]
        return [lic for lic in licenses if lic.should_be_suspended(now)]

    @sync_to_async
    @persistence_errors
    def find_licenses_needing_reminders(self, tier: ReminderTier, now: datetime) -> List[License]:
        models = self._active_queryset().filter(
            expires_at__gt=now + timedelta(days=tier.floor_days),
            expires_at__lte=now + timedelta(days=tier.days),
        )
        # JSON containment is not portable across backends, so the tag check runs here.
        licenses = [self._to_domain(model) for model in models]
        return [lic for lic in licenses if lic.should_send_renewal_reminder(tier, now)]

    @sync_to_async
    @persistence_errors
    def find_suspended_licenses(self) -> List[License]:
        models = self._queryset().filter(
            status=LicenseStatus.ACTIVE.value, suspended_at__isnull=False
        )
        return [self._to_domain(model) for model in models]

    @sync_to_async
    @persistence_errors
    def find_licenses_missing_grace_period(self) -> List[License]:
        models = self._active_queryset().filter(
            auto_suspend_enabled=True, grace_period_end__isnull=True
        )
        return [self._to_domain(model) for model in models]

    @sync_to_async
    def suspend_expired_licenses(self, license_ids: Sequence[str], reason: str, now: datetime) -> int:
        """
        Suspend licenses in one transaction.

        Already suspended or cancelled licenses are left alone.
        """
        with atomic_batch("suspend_expired_licenses"):
            return LicenseModel.objects.filter(
                id__in=list(license_ids),
                status=LicenseStatus.ACTIVE.value,
                suspended_at__isnull=True,
            ).update(suspended_at=now, suspension_reason=reason, updated_at=now)

    @sync_to_async
    @persistence_errors
    def extend_license_expiration(
        self, license_id: str, new_expiration: datetime, context: LifecycleContext
    ) -> License:
        model = self._get_model(license_id)
        extended, _ = self._to_domain(model).extend(new_expiration, context.now or timezone.now())
        return self._write(model, extended, ["expires_at", "grace_period_end", "updated_at"])

    @sync_to_async
    @persistence_errors
    def reactivate_license(self, license_id: str, context: LifecycleContext) -> License:
        model = self._get_model(license_id)
        reactivated, _ = self._to_domain(model).reactivate(context.now or timezone.now())
        return self._write(
            model,
            reactivated,
            [
                "status",
                "cancel_date",
                "suspended_at",
                "suspension_reason",
                "grace_period_end",
                "reactivated_at",
                "updated_at",
            ],
        )

    @sync_to_async
    @persistence_errors
    def add_renewal_history(
        self,
        license_id: str,
        action: str,
        metadata: Dict[str, Any],
        actor: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> RenewalHistoryEntry:
        if not LicenseModel.objects.filter(id=license_id).exists():
            raise LicenseNotFoundError(f"License {license_id} not found")
        entry = RenewalHistoryModel.objects.create(
            license_id=license_id,
            action=action,
            metadata=metadata,
            actor=actor,
            timestamp=timestamp or timezone.now(),
        )
        return self._history_to_domain(entry)

    @sync_to_async
    @persistence_errors
    def update_renewal_reminders(
        self,
        license_id: str,
        reminders_sent: Sequence[str],
        last_reminder: Optional[datetime],
    ) -> None:
        updated = LicenseModel.objects.filter(id=license_id).update(
            renewal_reminders_sent=list(reminders_sent),
            last_renewal_reminder=last_reminder,
            updated_at=timezone.now(),
        )
        if not updated:
            raise LicenseNotFoundError(f"License {license_id} not found")

    @sync_to_async
    def upsert(self, records: Sequence[SyncedLicense], now: datetime) -> UpsertResult:
        """
        Insert or update licenses keyed on appid, countid as fallback.

        Records sharing an identity inside the batch collapse to the last one.
        A record that fails entity validation is reported and skipped; a
        database failure rolls the whole batch back.
        """
        unique: Dict[str, SyncedLicense] = {}
        for record in records:
            unique[record.identity] = record

        result = UpsertResult()
        with atomic_batch("upsert"):
            appids = [r.appid for r in unique.values() if r.appid]
            by_appid = {
                model.appid: model
                for model in self._queryset().filter(appid__in=appids)
            }
            for identity, record in unique.items():
                if record.appid:
                    model = by_appid.get(record.appid)
                else:
                    model = self._queryset().filter(
                        countid=record.countid, appid__isnull=True
                    ).first()
                try:
                    if model is None:
                        result.created.append(self._create_synced(record, now))
                    elif self._update_synced(model, record, now):
                        result.updated.append(model.id)
                    else:
                        result.unchanged.append(model.id)
                except DomainException as e:
                    logger.warning("Skipping external record %s: %s", identity, e.message)
                    result.failures.append(
                        BatchFailure(item=identity, error=e.message, error_code=e.code)
                    )

        logger.info(
            "Upserted %d record(s): created=%d updated=%d unchanged=%d failed=%d",
            len(unique),
            len(result.created),
            len(result.updated),
            len(result.unchanged),
            len(result.failures),
        )
        return result

    def _create_synced(self, record: SyncedLicense, now: datetime) -> License:
        license, _ = License.create(
            dba=record.dba,
            starts_at=record.starts_at,
            source="external_sync",
            now=now,
            external_sync_status=EXTERNAL_SYNC_STATUS,
            last_external_sync=now,
            **record.creation_fields(),
        )
        LicenseModel.objects.create(id=license.id, **self._model_values(license))
        return license

    def _update_synced(self, model: LicenseModel, record: SyncedLicense, now: datetime) -> bool:
        current = self._to_domain(model)
        candidate = replace(current, **record.synced_fields())
        before = self._model_values(current)
        after = self._model_values(candidate)
        synced_columns = {
            "sms_balance" if name == "sms_balance_override" else name
            for name in record.synced_fields()
        }
        synced_columns.add("expires_at")
        changed = sorted(c for c in synced_columns if before[c] != after[c])
        if not changed:
            return False
        candidate = replace(
            candidate,
            external_sync_status=EXTERNAL_SYNC_STATUS,
            last_external_sync=now,
            updated_at=now,
        )
        self._write(
            model,
            candidate,
            changed + ["external_sync_status", "last_external_sync", "updated_at"],
        )
        return True
