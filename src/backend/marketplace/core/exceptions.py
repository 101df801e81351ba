"""
Custom exception classes for the application.

Provides structured error handling with consistent error codes
and HTTP status mappings.
"""

from typing import Any


class AppException(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for client handling
        status_code: HTTP status code to return
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        error_code: str = "APP_ERROR",
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class EntityNotFoundException(AppException):
    """Raised when a requested entity is not found."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        message = f"{entity_type} not found"
        if entity_id:
            message = f"{entity_type} with id '{entity_id}' not found"
        super().__init__(message, "ENTITY_NOT_FOUND", 404, details)


class DuplicateEntityException(AppException):
    """Raised when attempting to create a duplicate entity."""

    def __init__(
        self,
        entity_type: str,
        field: str,
        value: str,
    ) -> None:
        message = f"{entity_type} with {field}='{value}' already exists"
        super().__init__(message, "DUPLICATE_ENTITY", 409, {"field": field, "value": value})


# Validation Exceptions
class ValidationException(AppException):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str = "Validation failed",
        field_errors: dict[str, list[str]] | None = None,
    ) -> None:
        super().__init__(message, "VALIDATION_ERROR", 422, {"field_errors": field_errors or {}})


class DataIntegrityException(AppException):
    """Raised when related records disagree, e.g. a quote priced in another currency."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, "DATA_INTEGRITY_ERROR", 422, details)


# Lifecycle Exceptions
class InvalidStateException(AppException):
    """Raised when an operation is not allowed in the entity's current status."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        message: str,
    ) -> None:
        super().__init__(
            message,
            "INVALID_STATE",
            409,
            {
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_status": current_status,
            },
        )


class InvalidTransitionException(AppException):
    """Raised when a status change has no edge in the state machine."""

    def __init__(
        self,
        entity_type: str,
        from_status: str,
        to_status: str,
        rule: str | None = None,
    ) -> None:
        message = f"{entity_type} cannot move from '{from_status}' to '{to_status}'"
        if rule:
            message = f"{message}: {rule}"
        super().__init__(
            message,
            "INVALID_TRANSITION",
            409,
            {
                "entity_type": entity_type,
                "from_status": from_status,
                "to_status": to_status,
            },
        )


# External Service Exceptions
class ExternalServiceException(AppException):
    """Raised when an external service call fails."""

    def __init__(
        self,
        service_name: str,
        message: str = "External service call failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            f"{service_name}: {message}",
            "EXTERNAL_SERVICE_ERROR",
            503,
            {"service": service_name, **(details or {})},
        )


class ProviderDirectoryException(ExternalServiceException):
    """Raised when the remote provider directory cannot be reached."""

    def __init__(self, message: str = "Provider lookup failed") -> None:
        super().__init__("ProviderDirectory", message)
