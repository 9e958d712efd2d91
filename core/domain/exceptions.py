"""
Domain exceptions.

Domain exceptions represent business rule violations
and domain-specific error conditions.
"""
from typing import Optional


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    def __init__(self, message: str, code: str = None):
        """
        Initialize domain exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class LicenseException(DomainException):
    """Base exception for license-related errors."""

    pass


class InvalidLicenseStateError(LicenseException):
    """Raised when a license violates one of its invariants."""

    def __init__(self, rule: str, message: Optional[str] = None):
        super().__init__(
            message or f"License invariant violated: {rule}",
            code="INVALID_LICENSE_STATE",
        )
        self.rule = rule


class InvalidTransitionError(LicenseException):
    """Raised when a status change is not allowed from the current state."""

    def __init__(self, message: str = "Invalid license status transition"):
        super().__init__(message, code="INVALID_TRANSITION")


class CapacityExceededError(LicenseException):
    """Raised when no seats remain on a license."""

    def __init__(self, message: str = "License seat capacity exceeded"):
        super().__init__(message, code="CAPACITY_EXCEEDED")


class InsufficientBalanceError(LicenseException):
    """Raised when the SMS balance cannot cover a send."""

    def __init__(self, message: str = "Insufficient SMS balance"):
        super().__init__(message, code="INSUFFICIENT_BALANCE")


class LicenseNotFoundError(LicenseException):
    """Raised when a license is not found."""

    def __init__(self, message: str = "License not found"):
        super().__init__(message, code="LICENSE_NOT_FOUND")


class PersistenceError(DomainException):
    """Raised when the license store fails."""

    def __init__(self, message: str = "License store operation failed"):
        super().__init__(message, code="PERSISTENCE_ERROR")


class ExternalServiceError(DomainException):
    """Raised when the external license API cannot be reached or answers with an error."""

    def __init__(
        self,
        message: str = "External license service unavailable",
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR")
        self.status_code = status_code
        self.retryable = retryable


class CircuitOpenError(ExternalServiceError):
    """Raised without any network I/O while a circuit breaker is open."""

    def __init__(self, service_name: str):
        super().__init__(f"{service_name} service unavailable (circuit breaker open)")
        self.code = "CIRCUIT_OPEN"
        self.service_name = service_name


class InvalidExternalRecordError(DomainException):
    """Raised when a record from the external license API cannot be transformed."""

    def __init__(self, message: str = "Malformed external license record"):
        super().__init__(message, code="INVALID_EXTERNAL_RECORD")
