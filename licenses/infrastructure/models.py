"""
License and RenewalHistoryEntry models.
"""
import uuid

from django.db import models


def generate_license_id() -> str:
    return str(uuid.uuid4())


class License(models.Model):
    """
    A dashboard license.

    ``expires_at`` is always stored, either the explicit expiration or the
    one computed from the term, so expiration queries can run in SQL.
    """

    STATUS_CHOICES = [
        ("active", "Active"),
        ("cancel", "Cancelled"),
    ]
    TERM_CHOICES = [
        ("monthly", "Monthly"),
        ("yearly", "Yearly"),
    ]
    PLAN_CHOICES = [
        ("Basic", "Basic"),
        ("Premium", "Premium"),
        ("Enterprise", "Enterprise"),
    ]

    id = models.CharField(primary_key=True, max_length=64, default=generate_license_id, editable=False)
    dba = models.CharField(max_length=255)
    zip = models.CharField(max_length=20, blank=True, default="")
    plan = models.CharField(max_length=20, choices=PLAN_CHOICES, default="Basic")
    term = models.CharField(max_length=10, choices=TERM_CHOICES, default="monthly")
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="active")
    starts_at = models.DateTimeField()
    cancel_date = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(db_index=True)

    seats_total = models.PositiveIntegerField(default=1)
    seats_used = models.PositiveIntegerField(default=0)
    last_payment = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    sms_purchased = models.PositiveIntegerField(default=0)
    sms_sent = models.PositiveIntegerField(default=0)
    sms_balance = models.IntegerField(
        null=True, blank=True, help_text="Balance reported by the external license API"
    )
    agents = models.PositiveIntegerField(default=0)
    agents_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    notes = models.TextField(blank=True, default="")

    renewal_reminders_sent = models.JSONField(default=list, blank=True)
    last_renewal_reminder = models.DateTimeField(null=True, blank=True)
    grace_period_days = models.PositiveIntegerField(default=30)
    grace_period_end = models.DateTimeField(null=True, blank=True)
    auto_suspend_enabled = models.BooleanField(default=True)
    suspended_at = models.DateTimeField(null=True, blank=True)
    suspension_reason = models.CharField(max_length=255, null=True, blank=True)
    reactivated_at = models.DateTimeField(null=True, blank=True)

    appid = models.CharField(max_length=100, null=True, blank=True, unique=True)
    countid = models.CharField(max_length=100, null=True, blank=True, db_index=True)
    mid = models.CharField(max_length=100, null=True, blank=True)
    license_type = models.CharField(max_length=50, null=True, blank=True)
    package = models.JSONField(null=True, blank=True)
    contact_email = models.EmailField(null=True, blank=True)
    external_sync_status = models.CharField(max_length=20, null=True, blank=True)
    last_external_sync = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        db_table = "licenses"
        ordering = ["expires_at"]
        indexes = [
            models.Index(fields=["status", "expires_at"]),
            models.Index(fields=["status", "suspended_at"]),
            models.Index(fields=["auto_suspend_enabled", "grace_period_end"]),
        ]

    def __str__(self):
        return f"{self.dba} ({self.id})"


class RenewalHistoryEntry(models.Model):
    """
    Immutable audit trail of lifecycle mutations on a license.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    license = models.ForeignKey(License, on_delete=models.CASCADE, related_name="renewal_history")
    action = models.CharField(max_length=50, db_index=True)
    metadata = models.JSONField(default=dict, help_text="Details of the change")
    actor = models.CharField(max_length=255, null=True, blank=True, help_text="Who performed the action")
    timestamp = models.DateTimeField()

    class Meta:
        db_table = "license_renewal_history"
        ordering = ["timestamp", "id"]
        indexes = [
            models.Index(fields=["license", "timestamp"]),
        ]

    def __str__(self):
        return f"{self.action} - {self.license_id}"
