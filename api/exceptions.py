"""
API exception handlers.

This module maps domain exceptions onto REST API responses of the shape
``{"error": {"code": ..., "message": ...}}``.
"""

import logging
from typing import Any, Dict

from django.core.exceptions import ImproperlyConfigured
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.domain.exceptions import (
    CapacityExceededError,
    DomainException,
    ExternalServiceError,
    InsufficientBalanceError,
    InvalidLicenseStateError,
    InvalidTransitionError,
    LicenseNotFoundError,
    PersistenceError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_EXCEPTION = (
    (LicenseNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (CapacityExceededError, status.HTTP_409_CONFLICT),
    (InsufficientBalanceError, status.HTTP_409_CONFLICT),
    (InvalidLicenseStateError, status.HTTP_400_BAD_REQUEST),
    (ExternalServiceError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(exc: DomainException) -> int:
    """HTTP status for a domain exception; unknown ones are client errors."""
    for exception_class, status_code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exception_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def custom_exception_handler(exc: Exception, context: Dict[str, Any]) -> Response:
    """Custom exception handler for REST API."""
    if isinstance(exc, DomainException):
        return _handle_domain_exception(exc)

    if isinstance(exc, APIException):
        response = exception_handler(exc, context)
        if response:
            code = (
                exc.default_code.upper().replace("-", "_")
                if hasattr(exc, "default_code")
                else "API_ERROR"
            )
            detail = response.data
            if isinstance(detail, dict):
                detail = detail.get("detail", exc.default_detail)
            response.data = {"error": {"code": code, "message": detail}}
            return response

    if isinstance(exc, Http404):
        return Response(
            {"error": {"code": "NOT_FOUND", "message": "Resource not found"}},
            status=status.HTTP_404_NOT_FOUND,
        )

    if isinstance(exc, ImproperlyConfigured):
        logger.error("Service misconfigured: %s", exc)
        return Response(
            {"error": {"code": "NOT_CONFIGURED", "message": str(exc)}},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return _handle_unexpected_exception(exc, context)


def _handle_domain_exception(exc: DomainException) -> Response:
    """Handle domain-specific exceptions."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Domain exception: %s - %s", exc.code, exc.message)
    else:
        logger.warning("Domain exception: %s - %s", exc.code, exc.message)
    return Response({"error": {"code": exc.code, "message": exc.message}}, status=status_code)


def _handle_unexpected_exception(exc: Exception, context: Dict[str, Any]) -> Response:
    """Handle unexpected or untracked exceptions."""
    logger.error("Unexpected error: %s", exc, exc_info=True)
    response = exception_handler(exc, context)
    if not response:
        response = Response(
            {"error": {"code": "INTERNAL_ERROR", "message": "An internal error occurred"}},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    else:
        response.data = {
            "error": {"code": "INTERNAL_ERROR", "message": "An internal error occurred"}
        }
    return response
