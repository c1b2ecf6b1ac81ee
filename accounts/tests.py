"""
Tests for registration, login and the profile endpoint.
"""
from django.test import TestCase
from rest_framework.test import APIClient

from accounts.models import User
from loyalty.models import PointsTransaction, UserPoints

PASSWORD = "Crust-Lover-2024!"


class RegisterTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_register_returns_tokens_and_awards_signup_bonus(self):
        response = self.client.post(
            "/api/v1/auth/register",
            {"username": "luigi", "email": "luigi@example.com", "password": PASSWORD},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertIn("access", response.data)
        self.assertIn("refresh", response.data)

        user = User.objects.get(username="luigi")
        self.assertTrue(user.check_password(PASSWORD))
        account = UserPoints.objects.get(user=user)
        self.assertEqual(account.points, 100)
        self.assertEqual(user.rewards, 100)
        tx = PointsTransaction.objects.get(user=user)
        self.assertEqual(tx.idempotency_key, "signup-bonus")

    def test_duplicate_username_is_conflict(self):
        User.objects.create_user(username="luigi", email="other@example.com", password=PASSWORD)
        response = self.client.post(
            "/api/v1/auth/register",
            {"username": "Luigi", "email": "luigi@example.com", "password": PASSWORD},
            format="json",
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["kind"], "CONFLICT_ERROR")

    def test_short_password_rejected(self):
        response = self.client.post(
            "/api/v1/auth/register",
            {"username": "luigi", "email": "luigi@example.com", "password": "short"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("password", response.data["details"])


class LoginTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(
            username="mario", email="mario@example.com", password=PASSWORD, role="manager"
        )

    def test_login_token_authenticates_requests(self):
        response = self.client.post(
            "/api/v1/auth/login", {"username": "mario", "password": PASSWORD}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["user"]["role"], "manager")

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        me = self.client.get("/api/v1/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.data["username"], "mario")

    def test_login_sets_auth_cookie(self):
        response = self.client.post(
            "/api/v1/auth/login", {"username": "mario", "password": PASSWORD}, format="json"
        )
        cookie = response.cookies["auth-token"]
        self.assertEqual(cookie.value, response.data["access"])
        self.assertTrue(cookie["httponly"])
        self.assertEqual(cookie["samesite"], "Strict")

        me = self.client.get("/api/v1/auth/me")
        self.assertEqual(me.status_code, 200)

    def test_logout_clears_cookie(self):
        self.client.post("/api/v1/auth/login", {"username": "mario", "password": PASSWORD}, format="json")

        response = self.client.post("/api/v1/auth/logout")

        self.assertEqual(response.status_code, 204)
        self.assertEqual(response.cookies["auth-token"].value, "")
        self.assertEqual(self.client.get("/api/v1/auth/me").status_code, 401)

    def test_wrong_password(self):
        response = self.client.post(
            "/api/v1/auth/login", {"username": "mario", "password": "nope"}, format="json"
        )
        self.assertEqual(response.status_code, 401)

    def test_me_requires_authentication(self):
        response = self.client.get("/api/v1/auth/me")
        self.assertEqual(response.status_code, 401)


class MeTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username="peach", email="peach@example.com", password=PASSWORD)
        self.client.force_authenticate(self.user)

    def test_patch_updates_profile_but_not_role_or_rewards(self):
        response = self.client.patch(
            "/api/v1/auth/me",
            {"phone": "555-123-4567", "role": "admin", "rewards": 9999},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.phone, "555-123-4567")
        self.assertEqual(self.user.role, "customer")
        self.assertEqual(self.user.rewards, 0)
