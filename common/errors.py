# common/errors.py
"""
Error kinds shared by every app.

Services raise ``AppError`` subclasses directly; views never translate them.
``common.handlers.exception_handler`` renders them for DRF.
"""

from enum import Enum

from rest_framework import exceptions, status


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    AUTHORIZATION = "AUTHORIZATION_ERROR"
    NOT_FOUND = "NOT_FOUND_ERROR"
    CONFLICT = "CONFLICT_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"
    DATABASE = "DATABASE_ERROR"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE_ERROR"
    INTERNAL = "INTERNAL_ERROR"


STATUS_FOR_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTHENTICATION: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.RATE_LIMIT: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.DATABASE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.EXTERNAL_SERVICE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppError(exceptions.APIException):
    """Base for domain errors. ``kind`` decides the HTTP status."""

    kind = ErrorKind.INTERNAL
    default_detail = "Internal server error"

    def __init__(self, detail=None, details=None):
        super().__init__(detail=detail)
        self.status_code = STATUS_FOR_KIND[self.kind]
        self.details = details


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION
    default_detail = "Invalid request"


class AuthenticationError(AppError):
    kind = ErrorKind.AUTHENTICATION
    default_detail = "Authentication required"


class AuthorizationError(AppError):
    kind = ErrorKind.AUTHORIZATION
    default_detail = "Insufficient permissions"


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    default_detail = "Not found"


class ConflictError(AppError):
    kind = ErrorKind.CONFLICT
    default_detail = "Conflict"


class DatabaseUnavailableError(AppError):
    kind = ErrorKind.DATABASE
    default_detail = "Database temporarily unavailable"

    def __init__(self, attempts, last_error=None):
        super().__init__()
        self.attempts = attempts
        self.last_error = last_error


class ExternalServiceError(AppError):
    kind = ErrorKind.EXTERNAL_SERVICE
    default_detail = "External service unavailable"
