# common/middleware.py
from django.conf import settings
from django.http import HttpResponse, JsonResponse

from common.db import ensure_connection
from common.errors import DatabaseUnavailableError


ALLOWED_METHODS = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization"


def _apply_cors_headers(request, response):
    origin = request.headers.get("Origin")
    allowed = getattr(settings, "CORS_ALLOWED_ORIGINS", [])
    if origin and (not allowed or origin in allowed):
        response["Access-Control-Allow-Origin"] = origin
        response["Access-Control-Allow-Credentials"] = "true"
        response["Vary"] = "Origin"
    elif not origin and not allowed:
        response["Access-Control-Allow-Origin"] = "*"
    return response


class CorsMiddleware:
    """Answers preflight requests and decorates every response with CORS headers."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if request.method == "OPTIONS":
            response = HttpResponse()
            response["Access-Control-Allow-Methods"] = ALLOWED_METHODS
            response["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
            response["Access-Control-Max-Age"] = "86400"
            return _apply_cors_headers(request, response)
        return _apply_cors_headers(request, self.get_response(request))


class DatabaseConnectionMiddleware:
    """Makes sure the request starts with a live connection (with backoff)."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        try:
            ensure_connection()
        except DatabaseUnavailableError as exc:
            return JsonResponse(
                {"detail": str(exc.detail), "kind": exc.kind.value},
                status=exc.status_code,
            )
        return self.get_response(request)
