"""
Tests for error rendering, connection retry and token handling.
"""
import os
import subprocess
import sys
import time
from unittest.mock import MagicMock, patch

import jwt
from django.conf import settings
from django.db import IntegrityError, OperationalError
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from rest_framework import exceptions
from rest_framework.test import APIClient

from accounts.models import User
from common.auth import extract_token, is_supabase_token, verify_supabase_token
from common.db import RetryPolicy, ensure_connection, run_in_transaction
from common.errors import (
    AuthenticationError,
    DatabaseUnavailableError,
    ErrorKind,
    NotFoundError,
)
from common.handlers import exception_handler

SUPABASE_SECRET = "supabase-test-secret-with-enough-length-0123456789"


def _supabase_token(secret=SUPABASE_SECRET, **claims):
    payload = {
        "sub": "5f0c7a9e-1111-4c2b-9b7a-2d6d1f0e8a11",
        "aud": "authenticated",
        "iss": "https://abc.supabase.co/auth/v1",
        "email": "maria@example.com",
        "exp": int(time.time()) + 3600,
        "user_metadata": {"full_name": "Maria Rossi"},
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


class ImportOrderTests(SimpleTestCase):
    """Each entry point must import cleanly in a fresh interpreter."""

    def test_modules_import_from_cold_start(self):
        env = {**os.environ, "DJANGO_SETTINGS_MODULE": "core.settings"}
        for module in ("rest_framework.views", "common.errors", "common.auth", "core.urls"):
            with self.subTest(module=module):
                result = subprocess.run(
                    [sys.executable, "-c", f"import django; django.setup(); import {module}"],
                    cwd=settings.BASE_DIR, env=env, capture_output=True, text=True,
                )
                self.assertEqual(result.returncode, 0, result.stderr)


class ExceptionHandlerTests(SimpleTestCase):
    def test_app_error_renders_kind_and_status(self):
        response = exception_handler(NotFoundError("Order not found"), {"view": None})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["kind"], ErrorKind.NOT_FOUND.value)
        self.assertEqual(response.data["detail"], "Order not found")

    def test_drf_validation_error_keeps_field_details(self):
        exc = exceptions.ValidationError({"points": ["This field is required."]})
        response = exception_handler(exc, {"view": None})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["kind"], "VALIDATION_ERROR")
        self.assertEqual(response.data["detail"], "Invalid request")
        self.assertIn("points", response.data["details"])

    def test_unexpected_error_is_generic_internal(self):
        with self.assertLogs("common.errors", level="ERROR"):
            response = exception_handler(RuntimeError("secret stack detail"), {"view": None})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data, {"detail": "Internal server error", "kind": "INTERNAL_ERROR"})

    def test_not_authenticated_maps_to_authentication_kind(self):
        response = exception_handler(exceptions.NotAuthenticated(), {"view": None})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data["kind"], "AUTHENTICATION_ERROR")


class RetryPolicyTests(SimpleTestCase):
    def test_delay_doubles_and_is_capped(self):
        policy = RetryPolicy(max_retries=6, base_delay=0.1, backoff_factor=2.0, max_delay=2.0)
        delays = [policy.delay_for(n) for n in range(1, 7)]
        self.assertAlmostEqual(delays[0], 0.1)
        self.assertAlmostEqual(delays[1], 0.2)
        self.assertAlmostEqual(delays[2], 0.4)
        self.assertEqual(delays[-1], 2.0)


class EnsureConnectionTests(SimpleTestCase):
    def _connections(self, side_effect):
        conn = MagicMock()
        conn.ensure_connection.side_effect = side_effect
        return conn, {"default": conn}

    def test_retries_until_connected(self):
        conn, conns = self._connections([OperationalError("down"), OperationalError("down"), None])
        slept = []
        with patch("common.db.connections", conns):
            result = ensure_connection(policy=RetryPolicy(max_retries=3), sleep=slept.append)
        self.assertIs(result, conn)
        self.assertEqual(conn.ensure_connection.call_count, 3)
        self.assertEqual(len(slept), 2)
        self.assertLess(slept[0], slept[1])

    def test_gives_up_after_max_retries(self):
        conn, conns = self._connections(OperationalError("still down"))
        slept = []
        with patch("common.db.connections", conns):
            with self.assertRaises(DatabaseUnavailableError) as ctx:
                ensure_connection(policy=RetryPolicy(max_retries=3), sleep=slept.append)
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(conn.ensure_connection.call_count, 3)
        # no sleep after the final attempt
        self.assertEqual(len(slept), 2)


class RunInTransactionTests(TestCase):
    def test_returns_result(self):
        user = run_in_transaction(User.objects.create_user, username="maria", password="x")
        self.assertTrue(User.objects.filter(pk=user.pk).exists())

    def test_failure_rolls_back_every_write(self):
        def create_two():
            User.objects.create_user(username="first", password="x")
            User.objects.create_user(username="first", password="x")

        with self.assertRaises(IntegrityError):
            run_in_transaction(create_two)
        self.assertFalse(User.objects.filter(username="first").exists())


class TokenExtractionTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()

    def test_bearer_header_wins_over_cookie(self):
        request = self.factory.get("/", HTTP_AUTHORIZATION="Bearer header-token")
        request.COOKIES = {"token": "cookie-token"}
        self.assertEqual(extract_token(request), "header-token")

    def test_cookie_fallback_order(self):
        request = self.factory.get("/")
        request.COOKIES = {"jwt": "from-jwt", "session": "from-session"}
        self.assertEqual(extract_token(request), "from-jwt")

    def test_no_token(self):
        request = self.factory.get("/", HTTP_AUTHORIZATION="Basic abc")
        request.COOKIES = {}
        self.assertIsNone(extract_token(request))

    def test_supabase_token_detected_by_issuer(self):
        self.assertTrue(is_supabase_token(_supabase_token()))
        self.assertFalse(is_supabase_token(_supabase_token(iss="pizzeria")))
        self.assertFalse(is_supabase_token("not-a-jwt"))


class SupabaseVerificationTests(SimpleTestCase):
    @override_settings(SUPABASE_JWT_SECRET=SUPABASE_SECRET)
    def test_valid_token_returns_claims(self):
        claims = verify_supabase_token(_supabase_token())
        self.assertEqual(claims["email"], "maria@example.com")

    @override_settings(SUPABASE_JWT_SECRET=SUPABASE_SECRET)
    def test_wrong_signature_rejected(self):
        token = _supabase_token(secret="another-secret-that-is-long-enough-0123456789")
        with self.assertRaises(AuthenticationError):
            verify_supabase_token(token)

    @override_settings(SUPABASE_JWT_SECRET=SUPABASE_SECRET)
    def test_expired_token_rejected(self):
        with self.assertRaises(AuthenticationError) as ctx:
            verify_supabase_token(_supabase_token(exp=int(time.time()) - 60))
        self.assertEqual(str(ctx.exception.detail), "Token has expired")

    @override_settings(SUPABASE_JWT_SECRET="")
    def test_rejected_when_secret_not_configured(self):
        with self.assertRaises(AuthenticationError):
            verify_supabase_token(_supabase_token())


@override_settings(SUPABASE_JWT_SECRET=SUPABASE_SECRET)
class SupabaseRequestTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_first_request_creates_linked_user(self):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {_supabase_token()}")
        response = self.client.get("/api/v1/auth/me")
        self.assertEqual(response.status_code, 200)
        user = User.objects.get(supabase_user_id="5f0c7a9e-1111-4c2b-9b7a-2d6d1f0e8a11")
        self.assertEqual(user.email, "maria@example.com")
        self.assertEqual(user.role, "customer")
        self.assertEqual(response.data["id"], user.id)

    def test_existing_email_account_is_linked(self):
        legacy = User.objects.create_user(username="maria", email="Maria@example.com", password="x")
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {_supabase_token()}")
        response = self.client.get("/api/v1/auth/me")
        self.assertEqual(response.status_code, 200)
        legacy.refresh_from_db()
        self.assertEqual(legacy.supabase_user_id, "5f0c7a9e-1111-4c2b-9b7a-2d6d1f0e8a11")
        self.assertEqual(User.objects.count(), 1)

    def test_bad_token_is_401(self):
        self.client.credentials(HTTP_AUTHORIZATION="Bearer garbage")
        response = self.client.get("/api/v1/auth/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data["kind"], "AUTHENTICATION_ERROR")


class CorsMiddlewareTests(TestCase):
    @override_settings(CORS_ALLOWED_ORIGINS=["https://favillaspizzeria.com"])
    def test_preflight_for_allowed_origin(self):
        response = self.client.options(
            "/api/v1/points", HTTP_ORIGIN="https://favillaspizzeria.com"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Access-Control-Allow-Origin"], "https://favillaspizzeria.com")
        self.assertIn("PATCH", response["Access-Control-Allow-Methods"])

    @override_settings(CORS_ALLOWED_ORIGINS=["https://favillaspizzeria.com"])
    def test_unknown_origin_gets_no_allow_header(self):
        response = self.client.options("/api/v1/points", HTTP_ORIGIN="https://evil.example")
        self.assertFalse(response.has_header("Access-Control-Allow-Origin"))
