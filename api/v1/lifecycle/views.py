"""
Lifecycle API views.

These endpoints are used by operators to:
- Review licenses requiring attention
- Renew, extend, reactivate and cancel licenses
- Trigger the external sync and inspect its runs
"""

import logging

from asgiref.sync import async_to_sync
from django.utils import timezone
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from api.v1.lifecycle.serializers import (
    AttentionQuerySerializer,
    AttentionReportSerializer,
    ExtendLicenseRequestSerializer,
    LicenseSerializer,
    LifecycleActionRequestSerializer,
    RenewLicenseRequestSerializer,
    SingleSyncResponseSerializer,
    SyncRequestSerializer,
    SyncRunSerializer,
)
from external_sync.infrastructure.factory import build_sync_engine
from external_sync.infrastructure.repositories.django_sync_run_repository import (
    DjangoSyncRunRepository,
)
from licenses.application.dto.lifecycle_dto import RenewalOptions
from licenses.domain.sync import LifecycleContext
from licenses.infrastructure.factory import build_lifecycle_service

logger = logging.getLogger(__name__)

_sync_run_repo = DjangoSyncRunRepository()


def _context(request: Request, data: dict) -> LifecycleContext:
    user = getattr(request, "user", None)
    actor = data.get("actor") or (user.get_username() if user and user.is_authenticated else None)
    return LifecycleContext(actor=actor or "api", reason=data.get("reason") or None)


def _license_response(license, http_status=status.HTTP_200_OK) -> Response:
    serializer = LicenseSerializer(license, context={"now": timezone.now()})
    return Response(serializer.data, status=http_status)


class AttentionReportView(APIView):
    """View for licenses requiring attention."""

    @extend_schema(
        operation_id="licenses_requiring_attention",
        summary="Licenses Requiring Attention",
        description="List licenses that are expiring soon, expired, or suspended.",
        tags=["Lifecycle API"],
        parameters=[
            OpenApiParameter(name="days", type=int, required=False),
            OpenApiParameter(name="include_expiring_soon", type=bool, required=False),
            OpenApiParameter(name="include_expired", type=bool, required=False),
            OpenApiParameter(name="include_suspended", type=bool, required=False),
        ],
        responses={200: AttentionReportSerializer, 400: {"description": "Bad Request"}},
    )
    def get(self, request: Request) -> Response:
        """Return the attention report."""
        query = AttentionQuerySerializer(data=request.query_params.dict())
        if not query.is_valid():
            return Response({"error": query.errors}, status=status.HTTP_400_BAD_REQUEST)
        report = async_to_sync(build_lifecycle_service().get_licenses_requiring_attention)(
            include_expiring_soon=query.validated_data["include_expiring_soon"],
            include_expired=query.validated_data["include_expired"],
            include_suspended=query.validated_data["include_suspended"],
            days_threshold=query.validated_data.get("days"),
        )
        serializer = AttentionReportSerializer(report, context={"now": timezone.now()})
        return Response(serializer.data)


class RenewLicenseView(APIView):
    """View for renewing licenses."""

    @extend_schema(
        operation_id="renew_license",
        summary="Renew License",
        description=(
            "Extend a license by one term, or to the given date. "
            "A suspended license is reactivated."
        ),
        tags=["Lifecycle API"],
        request=RenewLicenseRequestSerializer,
        responses={
            200: LicenseSerializer,
            400: {"description": "Bad Request"},
            404: {"description": "Not Found"},
            409: {"description": "License cannot be renewed"},
        },
    )
    def post(self, request: Request, license_id: str) -> Response:
        """Renew a license."""
        serializer = RenewLicenseRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        license = async_to_sync(build_lifecycle_service().renew_license)(
            license_id,
            RenewalOptions(new_expiration_date=serializer.validated_data.get("new_expiration_date")),
            _context(request, serializer.validated_data),
        )
        return _license_response(license)


class ExtendLicenseView(APIView):
    """View for extending a license's expiration."""

    @extend_schema(
        operation_id="extend_license",
        summary="Extend License",
        description="Set a new expiration date on a license.",
        tags=["Lifecycle API"],
        request=ExtendLicenseRequestSerializer,
        responses={
            200: LicenseSerializer,
            400: {"description": "Bad Request"},
            404: {"description": "Not Found"},
        },
    )
    def post(self, request: Request, license_id: str) -> Response:
        """Extend a license."""
        serializer = ExtendLicenseRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        license = async_to_sync(build_lifecycle_service().extend_license_expiration)(
            license_id,
            serializer.validated_data["new_expiration_date"],
            _context(request, serializer.validated_data),
        )
        return _license_response(license)


class ReactivateLicenseView(APIView):
    """View for reactivating licenses."""

    @extend_schema(
        operation_id="reactivate_license",
        summary="Reactivate License",
        description="Reactivate a suspended, expired, or cancelled license.",
        tags=["Lifecycle API"],
        request=LifecycleActionRequestSerializer,
        responses={
            200: LicenseSerializer,
            404: {"description": "Not Found"},
            409: {"description": "License is not suspended, expired, or cancelled"},
        },
    )
    def post(self, request: Request, license_id: str) -> Response:
        """Reactivate a license."""
        serializer = LifecycleActionRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        license = async_to_sync(build_lifecycle_service().reactivate_license)(
            license_id, _context(request, serializer.validated_data)
        )
        return _license_response(license)


class CancelLicenseView(APIView):
    """View for cancelling licenses."""

    @extend_schema(
        operation_id="cancel_license",
        summary="Cancel License",
        description="Cancel a license. Cancellation is terminal until reactivated.",
        tags=["Lifecycle API"],
        request=LifecycleActionRequestSerializer,
        responses={
            200: LicenseSerializer,
            404: {"description": "Not Found"},
            409: {"description": "License already cancelled"},
        },
    )
    def post(self, request: Request, license_id: str) -> Response:
        """Cancel a license."""
        serializer = LifecycleActionRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        license = async_to_sync(build_lifecycle_service().cancel_license)(
            license_id, _context(request, serializer.validated_data)
        )
        return _license_response(license)


class SyncTriggerView(APIView):
    """View for triggering the external sync."""

    @extend_schema(
        operation_id="trigger_external_sync",
        summary="Trigger External Sync",
        description=(
            "Run the external license sync and return its summary, or queue it "
            "on the task worker when background is set."
        ),
        tags=["Sync API"],
        request=SyncRequestSerializer,
        responses={
            200: SyncRunSerializer,
            202: {"description": "Sync queued"},
            400: {"description": "Bad Request"},
        },
    )
    def post(self, request: Request) -> Response:
        """Trigger a sync run."""
        serializer = SyncRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        dry_run = serializer.validated_data["dry_run"]
        max_pages = serializer.validated_data.get("max_pages")

        if serializer.validated_data["background"]:
            from external_sync.tasks import sync_external_licenses_task

            task = sync_external_licenses_task.delay(dry_run=dry_run, max_pages=max_pages)
            logger.info("Queued external sync task %s", task.id)
            return Response({"task_id": task.id}, status=status.HTTP_202_ACCEPTED)

        run = async_to_sync(build_sync_engine().sync)(dry_run=dry_run, max_pages=max_pages)
        return Response(SyncRunSerializer(run).data)


class SyncSingleLicenseView(APIView):
    """View for syncing one license by appid."""

    @extend_schema(
        operation_id="sync_single_license",
        summary="Sync Single License",
        description="Fetch one license from the external API by appid and upsert it.",
        tags=["Sync API"],
        responses={
            200: SingleSyncResponseSerializer,
            404: {"description": "Unknown to the external API"},
            503: {"description": "External API unavailable"},
        },
    )
    def post(self, request: Request, appid: str) -> Response:
        """Sync one license."""
        result = async_to_sync(build_sync_engine().sync_single_license)(appid)
        data = {
            "appid": appid,
            "created": len(result.created),
            "updated": len(result.updated),
            "unchanged": len(result.unchanged),
        }
        return Response(SingleSyncResponseSerializer(data).data)


class LatestSyncRunView(APIView):
    """View for the latest sync run."""

    @extend_schema(
        operation_id="latest_sync_run",
        summary="Latest Sync Run",
        tags=["Sync API"],
        responses={200: SyncRunSerializer, 404: {"description": "No sync has run yet"}},
    )
    def get(self, request: Request) -> Response:
        """Return the most recent sync run."""
        run = async_to_sync(_sync_run_repo.latest)()
        if run is None:
            return Response(
                {"error": {"code": "NOT_FOUND", "message": "No sync run recorded"}},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(SyncRunSerializer(run).data)


class SyncRunListView(APIView):
    """View for recent sync runs."""

    @extend_schema(
        operation_id="list_sync_runs",
        summary="Recent Sync Runs",
        tags=["Sync API"],
        parameters=[OpenApiParameter(name="limit", type=int, required=False)],
        responses={200: SyncRunSerializer(many=True)},
    )
    def get(self, request: Request) -> Response:
        """Return recent sync runs, newest first."""
        try:
            limit = min(max(int(request.query_params.get("limit", 20)), 1), 100)
        except ValueError:
            return Response(
                {"error": {"code": "VALIDATION_ERROR", "message": "limit must be an integer"}},
                status=status.HTTP_400_BAD_REQUEST,
            )
        runs = async_to_sync(_sync_run_repo.recent)(limit)
        return Response(SyncRunSerializer(runs, many=True).data)


class SyncHealthView(APIView):
    """View for the external API health."""

    @extend_schema(
        operation_id="external_api_health",
        summary="External API Health",
        tags=["Sync API"],
        responses={200: {"description": "Healthy"}, 503: {"description": "Unhealthy"}},
    )
    def get(self, request: Request) -> Response:
        """Check that the external license API answers."""
        healthy = async_to_sync(build_sync_engine().health_check)()
        return Response(
            {"healthy": healthy},
            status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        )
