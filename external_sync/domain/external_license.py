"""
External license records.

Maps the third-party license API's record shape onto SyncedLicense.
"""
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from core.domain.exceptions import InvalidExternalRecordError
from core.domain.value_objects import LicenseStatus
from licenses.domain.sync import SyncedLicense

DEFAULT_DBA = "External License"
ACTIVE_STATUS_VALUES = {1, "1", "active", "Active", "ACTIVE"}


def parse_external_datetime(value: Any, field_name: str) -> Optional[datetime]:
    """
    Parse an ISO date or datetime from the external API.

    Naive values are taken as UTC. Empty values give None.

    Raises:
        InvalidExternalRecordError: If the value is not a valid date
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidExternalRecordError(f"Invalid {field_name} format: {value!r}") from None
    else:
        raise InvalidExternalRecordError(f"Invalid {field_name} format: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_status(value: Any) -> LicenseStatus:
    """1 or "active" is active, anything else is cancelled."""
    if value is None or value == "":
        raise InvalidExternalRecordError("status is required")
    return LicenseStatus.ACTIVE if value in ACTIVE_STATUS_VALUES else LicenseStatus.CANCEL


def _money(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidExternalRecordError(f"Invalid monthlyFee: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise InvalidExternalRecordError(f"monthlyFee must be non-negative, got {value!r}")
    return amount


def _optional_int(value: Any, field_name: str) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidExternalRecordError(f"Invalid {field_name}: {value!r}") from None


def _optional_str(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value).strip() or None


def transform_external_record(
    raw: Mapping[str, Any], now: datetime, grace_period_days: int = 30
) -> SyncedLicense:
    """
    Transform one external API record.

    Args:
        raw: Record as returned by the external API
        now: Sync time, used for missing start and cancel dates
        grace_period_days: Grace period given to newly imported licenses

    Returns:
        SyncedLicense ready for upsert

    Raises:
        InvalidExternalRecordError: If the record is malformed
    """
    if not isinstance(raw, Mapping):
        raise InvalidExternalRecordError(f"Expected an object, got {type(raw).__name__}")

    appid = _optional_str(raw.get("appid"))
    countid = _optional_str(raw.get("countid"))
    if appid is None and countid is None:
        raise InvalidExternalRecordError("Record has neither appid nor countid")

    status = parse_status(raw.get("status"))
    email = _optional_str(raw.get("Email_license"))
    dba = _optional_str(raw.get("dba")) or email or DEFAULT_DBA

    starts_at = parse_external_datetime(raw.get("ActivateDate"), "ActivateDate")
    if starts_at is None:
        starts_at = now.replace(hour=0, minute=0, second=0, microsecond=0)

    cancel_date = None
    if status == LicenseStatus.CANCEL:
        cancel_date = parse_external_datetime(raw.get("lastActive"), "lastActive") or now
    else:
        # still validated so a malformed value is reported
        parse_external_datetime(raw.get("lastActive"), "lastActive")

    return SyncedLicense(
        appid=appid,
        countid=countid,
        dba=dba,
        starts_at=starts_at,
        status=status,
        cancel_date=cancel_date,
        expires_at=parse_external_datetime(raw.get("Coming_expired"), "Coming_expired"),
        zip=_optional_str(raw.get("zip")) or "",
        mid=_optional_str(raw.get("mid")),
        license_type=_optional_str(raw.get("license_type")),
        last_payment=_money(raw.get("monthlyFee")),
        sms_balance=_optional_int(raw.get("smsBalance"), "smsBalance"),
        contact_email=email if email and "@" in email else None,
        package=raw.get("Package"),
        notes=_optional_str(raw.get("Note")) or "",
        grace_period_days=grace_period_days,
    )
