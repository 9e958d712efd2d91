"""
Serializers for lifecycle and sync API endpoints.
"""

from rest_framework import serializers


class LifecycleActionRequestSerializer(serializers.Serializer):
    """Common fields of a manual lifecycle action."""

    actor = serializers.CharField(required=False, allow_blank=True, max_length=255)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500)


class RenewLicenseRequestSerializer(LifecycleActionRequestSerializer):
    """Serializer for renew license request."""

    new_expiration_date = serializers.DateTimeField(required=False, allow_null=True)


class ExtendLicenseRequestSerializer(LifecycleActionRequestSerializer):
    """Serializer for extend license request."""

    new_expiration_date = serializers.DateTimeField(required=True)


class AttentionQuerySerializer(serializers.Serializer):
    """Query parameters of the attention report."""

    days = serializers.IntegerField(required=False, min_value=1, max_value=365)
    include_expiring_soon = serializers.BooleanField(required=False, default=True)
    include_expired = serializers.BooleanField(required=False, default=True)
    include_suspended = serializers.BooleanField(required=False, default=True)


class LicenseSerializer(serializers.Serializer):
    """Serializer for the License entity."""

    id = serializers.CharField()
    dba = serializers.CharField()
    appid = serializers.CharField(allow_null=True)
    countid = serializers.CharField(allow_null=True)
    plan = serializers.CharField()
    term = serializers.CharField()
    status = serializers.CharField()
    lifecycle_state = serializers.SerializerMethodField()
    starts_at = serializers.DateTimeField()
    expiration_date = serializers.DateTimeField()
    grace_period_end = serializers.DateTimeField(source="effective_grace_period_end")
    cancel_date = serializers.DateTimeField(allow_null=True)
    suspended_at = serializers.DateTimeField(allow_null=True)
    suspension_reason = serializers.CharField(allow_null=True)
    reactivated_at = serializers.DateTimeField(allow_null=True)
    seats_total = serializers.IntegerField()
    seats_used = serializers.IntegerField()
    available_seats = serializers.IntegerField()
    sms_balance = serializers.IntegerField()
    contact_email = serializers.CharField(allow_null=True)
    renewal_reminders_sent = serializers.ListField(child=serializers.CharField())
    last_external_sync = serializers.DateTimeField(allow_null=True)

    def get_lifecycle_state(self, obj) -> str:
        return str(obj.lifecycle_state(self.context.get("now")))


class AttentionReportSerializer(serializers.Serializer):
    """Serializer for the attention report."""

    total = serializers.IntegerField()
    expiring_soon = LicenseSerializer(many=True)
    expired = LicenseSerializer(many=True)
    suspended = LicenseSerializer(many=True)
    errors = serializers.DictField(child=serializers.CharField())


class SyncRequestSerializer(serializers.Serializer):
    """Serializer for sync trigger request."""

    dry_run = serializers.BooleanField(required=False, default=False)
    max_pages = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    background = serializers.BooleanField(required=False, default=False)


class SyncErrorSerializer(serializers.Serializer):
    """A failed record or page of a sync run."""

    item = serializers.CharField(allow_null=True)
    error = serializers.CharField()
    code = serializers.CharField(allow_null=True)


class SyncRunSerializer(serializers.Serializer):
    """Serializer for a sync run summary."""

    id = serializers.CharField()
    status = serializers.CharField()
    dry_run = serializers.BooleanField()
    started_at = serializers.DateTimeField()
    finished_at = serializers.DateTimeField(allow_null=True)
    duration_seconds = serializers.FloatField(allow_null=True)
    pages_fetched = serializers.IntegerField()
    fetched = serializers.IntegerField()
    created = serializers.IntegerField()
    updated = serializers.IntegerField()
    unchanged = serializers.IntegerField()
    validated = serializers.IntegerField()
    succeeded = serializers.IntegerField()
    failed = serializers.IntegerField()
    errors = SyncErrorSerializer(many=True)
    message = serializers.CharField(allow_blank=True)


class SingleSyncResponseSerializer(serializers.Serializer):
    """Serializer for the outcome of a single-license sync."""

    appid = serializers.CharField()
    created = serializers.IntegerField()
    updated = serializers.IntegerField()
    unchanged = serializers.IntegerField()
