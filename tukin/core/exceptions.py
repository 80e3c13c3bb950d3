"""Custom exception classes for the Tukin platform."""

from typing import List, Optional

from fastapi import status


class TukinError(Exception):
    """Base exception for Tukin."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class AuthenticationRequired(TukinError):
    """Raised when the credential is missing, invalid or expired."""

    code = "AUTHENTICATION_REQUIRED"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthorizationDenied(TukinError):
    """Raised when a verified identity lacks the required permissions.

    ``missing`` holds the permission names that caused the denial. It is
    logged server-side and only echoed to clients in debug mode.
    """

    code = "AUTHORIZATION_DENIED"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Access denied", missing: Optional[List[str]] = None):
        self.missing = list(missing or [])
        super().__init__(message)


class AuthorizationUnavailable(TukinError):
    """Raised when permissions cannot be resolved because a store failed."""

    code = "AUTHORIZATION_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Authorization service unavailable"):
        super().__init__(message)


class ConfigurationError(TukinError):
    """Raised when the process cannot authenticate anyone (e.g. missing secret)."""

    code = "CONFIGURATION_ERROR"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class RoleStoreUnavailable(TukinError):
    """Raised by stores and the role resolver on infrastructure failure. Retryable."""

    code = "STORE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ResourceNotFoundError(TukinError):
    """Raised when a requested resource is not found."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class ResourceConflictError(TukinError):
    """Raised when a resource already exists or is still referenced."""

    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class ValidationError(TukinError):
    """Raised when input validation fails."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionEncodingError(ValidationError):
    """Raised when an untrusted permission string holds unknown categories."""
    pass

