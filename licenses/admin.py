"""
Django admin configuration for licenses app.
"""
import json

from django.contrib import admin
from django.utils.html import format_html

from licenses.infrastructure.models import License, RenewalHistoryEntry


class RenewalHistoryInline(admin.TabularInline):
    """Read-only renewal history on the license page."""

    model = RenewalHistoryEntry
    extra = 0
    can_delete = False
    readonly_fields = ["action", "actor", "timestamp", "metadata"]

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(License)
class LicenseAdmin(admin.ModelAdmin):
    """Admin interface for License model."""

    list_display = [
        "dba",
        "plan",
        "term",
        "status_display",
        "seats_used",
        "seats_total",
        "expires_at",
        "appid",
    ]
    list_filter = ["status", "plan", "term", "auto_suspend_enabled", "expires_at"]
    search_fields = ["dba", "appid", "countid", "contact_email"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "last_external_sync",
        "external_sync_status",
    ]
    inlines = [RenewalHistoryInline]
    fieldsets = (
        (
            "Basic Information",
            {
                "fields": ("id", "dba", "zip", "plan", "term", "status", "notes"),
            },
        ),
        (
            "Term",
            {
                "fields": ("starts_at", "expires_at", "cancel_date"),
            },
        ),
        (
            "Usage",
            {
                "fields": (
                    "seats_total",
                    "seats_used",
                    "sms_purchased",
                    "sms_sent",
                    "sms_balance",
                    "agents",
                    "agents_cost",
                    "last_payment",
                ),
            },
        ),
        (
            "Lifecycle",
            {
                "fields": (
                    "grace_period_days",
                    "grace_period_end",
                    "auto_suspend_enabled",
                    "suspended_at",
                    "suspension_reason",
                    "reactivated_at",
                    "renewal_reminders_sent",
                    "last_renewal_reminder",
                ),
            },
        ),
        (
            "External Sync",
            {
                "fields": (
                    "appid",
                    "countid",
                    "mid",
                    "license_type",
                    "package",
                    "contact_email",
                    "external_sync_status",
                    "last_external_sync",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )

    def status_display(self, obj):
        """Display status with color coding."""
        if obj.status == "cancel":
            color, label = "red", "CANCELLED"
        elif obj.suspended_at:
            color, label = "orange", "SUSPENDED"
        else:
            color, label = "green", "ACTIVE"
        return format_html('<span style="color: {}; font-weight: bold;">{}</span>', color, label)

    status_display.short_description = "Status"


@admin.register(RenewalHistoryEntry)
class RenewalHistoryEntryAdmin(admin.ModelAdmin):
    """Admin interface for the renewal history."""

    list_display = ["action", "license", "actor", "timestamp"]
    list_filter = ["action", "timestamp"]
    search_fields = ["actor", "license__dba", "license__id"]
    readonly_fields = ["id", "license", "action", "actor", "timestamp", "metadata_display"]
    exclude = ["metadata"]

    def metadata_display(self, obj):
        """Display metadata in a formatted way."""
        if obj.metadata:
            return format_html(
                '<pre style="background: #f5f5f5; padding: 10px; '
                'border-radius: 4px; overflow-x: auto;">{}</pre>',
                json.dumps(obj.metadata, indent=2),
            )
        return "-"

    metadata_display.short_description = "Metadata"

    def has_add_permission(self, request):
        """History is append-only through the lifecycle service."""
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
