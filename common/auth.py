# common/auth.py
"""
Request authentication.

Two kinds of bearer tokens are accepted:

* Supabase access tokens (``iss`` contains "supabase"). These are verified
  with ``SUPABASE_JWT_SECRET``; the user row is looked up by the Supabase
  UUID and created on first sight.
* Tokens issued by our own login endpoint (simplejwt, signed with
  ``JWT_SECRET``).

The token is read from the ``Authorization: Bearer`` header first and then
from the ``auth-token``, ``token``, ``jwt`` and ``session`` cookies.
"""

from dataclasses import dataclass
from typing import Any

import jwt
from django.conf import settings
from rest_framework.authentication import BaseAuthentication
from rest_framework_simplejwt.authentication import JWTAuthentication

from common.errors import AuthenticationError
from common.roles import is_admin_role, is_staff_role

TOKEN_COOKIES = ("auth-token", "token", "jwt", "session")


@dataclass(frozen=True)
class Principal:
    user: Any
    user_id: int
    username: str
    role: str
    supabase_user_id: str | None = None
    is_supabase: bool = False
    email: str = ""
    full_name: str = ""

    @property
    def is_staff_role(self) -> bool:
        return is_staff_role(self.role)

    @property
    def is_admin_role(self) -> bool:
        return is_admin_role(self.role)

    @classmethod
    def for_user(cls, user, is_supabase=False) -> "Principal":
        return cls(
            user=user,
            user_id=user.pk,
            username=user.get_username(),
            role=user.role,
            supabase_user_id=user.supabase_user_id,
            is_supabase=is_supabase,
            email=user.email or "",
            full_name=user.get_full_name(),
        )


def extract_token(request) -> str | None:
    header = request.META.get("HTTP_AUTHORIZATION", "")
    if header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
        if token:
            return token
    for name in TOKEN_COOKIES:
        value = request.COOKIES.get(name)
        if value:
            return value
    return None


def is_supabase_token(token: str) -> bool:
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return False
    return "supabase" in str(claims.get("iss") or "")


def verify_supabase_token(token: str) -> dict:
    secret = getattr(settings, "SUPABASE_JWT_SECRET", "")
    if not secret:
        raise AuthenticationError("Supabase authentication is not configured")
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=getattr(settings, "SUPABASE_JWT_AUDIENCE", "authenticated"),
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid token")


def authenticate(request) -> Principal | None:
    """Return the caller's Principal, None when no token was sent."""
    token = extract_token(request)
    if not token:
        return None

    if is_supabase_token(token):
        # lazy: accounts imports common
        from accounts.services import resolve_supabase_user

        claims = verify_supabase_token(token)
        user = resolve_supabase_user(claims)
        is_supabase = True
    else:
        backend = JWTAuthentication()
        validated = backend.get_validated_token(token)
        user = backend.get_user(validated)
        is_supabase = False

    if not user.is_active:
        raise AuthenticationError("User account is disabled")
    return Principal.for_user(user, is_supabase=is_supabase)


class PrincipalAuthentication(BaseAuthentication):
    """DRF hook: ``request.user`` is the User row, ``request.auth`` the Principal."""

    def authenticate(self, request):
        principal = authenticate(request)
        if principal is None:
            return None
        return principal.user, principal

    def authenticate_header(self, request):
        return 'Bearer realm="api"'
