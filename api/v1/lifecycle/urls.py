"""
URL configuration for lifecycle and sync API endpoints.
"""

from django.urls import path

from api.v1.lifecycle import views

urlpatterns = [
    path(
        "licenses/attention",
        views.AttentionReportView.as_view(),
        name="licenses-attention",
    ),
    path(
        "licenses/<str:license_id>/renew",
        views.RenewLicenseView.as_view(),
        name="renew-license",
    ),
    path(
        "licenses/<str:license_id>/extend",
        views.ExtendLicenseView.as_view(),
        name="extend-license",
    ),
    path(
        "licenses/<str:license_id>/reactivate",
        views.ReactivateLicenseView.as_view(),
        name="reactivate-license",
    ),
    path(
        "licenses/<str:license_id>/cancel",
        views.CancelLicenseView.as_view(),
        name="cancel-license",
    ),
    path("sync", views.SyncTriggerView.as_view(), name="sync-trigger"),
    path("sync/health", views.SyncHealthView.as_view(), name="sync-health"),
    path("sync/runs", views.SyncRunListView.as_view(), name="sync-runs"),
    path("sync/runs/latest", views.LatestSyncRunView.as_view(), name="sync-run-latest"),
    path(
        "sync/licenses/<str:appid>",
        views.SyncSingleLicenseView.as_view(),
        name="sync-single-license",
    ),
]
