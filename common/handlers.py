# common/handlers.py
"""
DRF exception handler. Renders every error as ``{"detail": ..., "kind": ...}``.

``common.errors`` must not import this module: ``rest_framework.views`` loads
the authentication classes, which import the error types.
"""

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError
from django.http import Http404
from rest_framework import exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.views import set_rollback

from common.errors import STATUS_FOR_KIND, AppError, ErrorKind

logger = logging.getLogger(__name__)


def _kind_for_drf_exception(exc):
    if isinstance(exc, AppError):
        return exc.kind
    if isinstance(exc, exceptions.ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        return ErrorKind.AUTHENTICATION
    if isinstance(exc, exceptions.PermissionDenied):
        return ErrorKind.AUTHORIZATION
    if isinstance(exc, exceptions.NotFound):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, exceptions.Throttled):
        return ErrorKind.RATE_LIMIT
    if isinstance(exc, exceptions.APIException) and exc.status_code < 500:
        return ErrorKind.VALIDATION
    return ErrorKind.INTERNAL


def exception_handler(exc, context):
    if isinstance(exc, DjangoValidationError):
        exc = exceptions.ValidationError(
            exc.message_dict if hasattr(exc, "error_dict") else exc.messages
        )
    elif isinstance(exc, Http404):
        exc = exceptions.NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = exceptions.PermissionDenied()

    response = drf_exception_handler(exc, context)
    if response is not None:
        kind = _kind_for_drf_exception(exc)
        body = {"kind": kind.value}
        if isinstance(exc, exceptions.ValidationError) and not isinstance(exc, AppError):
            body["detail"] = "Invalid request"
            body["details"] = response.data
        else:
            body["detail"] = response.data.get("detail") if isinstance(response.data, dict) else response.data
            details = getattr(exc, "details", None)
            if details is not None:
                body["details"] = details
        response.data = body
        return response

    view = context.get("view")
    view_name = type(view).__name__ if view else "unknown"
    set_rollback()
    if isinstance(exc, DatabaseError):
        logger.error("Database error in %s", view_name, exc_info=exc)
        kind, detail = ErrorKind.DATABASE, "Database error"
    else:
        logger.error("Unhandled error in %s", view_name, exc_info=exc)
        kind, detail = ErrorKind.INTERNAL, "Internal server error"
    return Response({"detail": detail, "kind": kind.value}, status=STATUS_FOR_KIND[kind])

