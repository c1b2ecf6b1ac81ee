# accounts/services.py
import logging

from django.db import IntegrityError, transaction

from common.errors import AuthenticationError, ConflictError
from .models import User

logger = logging.getLogger(__name__)


def _available_username(base: str, fallback: str) -> str:
    base = (base or fallback)[:140]
    if not User.objects.filter(username=base).exists():
        return base
    return f"{base}-{fallback[:8]}"


def resolve_supabase_user(claims: dict) -> User:
    """
    Find the User linked to a verified Supabase token, creating it on the
    first authenticated request. The role always comes from our own row.
    """
    supabase_id = claims.get("sub")
    if not supabase_id:
        raise AuthenticationError("Token has no subject")

    user = User.objects.filter(supabase_user_id=supabase_id).first()
    if user:
        return user

    email = (claims.get("email") or "").strip().lower()
    metadata = claims.get("user_metadata") or {}
    full_name = (metadata.get("full_name") or metadata.get("name") or "").strip()
    first_name, _, last_name = full_name.partition(" ")

    if email:
        # Account created through the legacy signup with the same email.
        existing = User.objects.filter(email__iexact=email, supabase_user_id__isnull=True).first()
        if existing:
            existing.supabase_user_id = supabase_id
            existing.save(update_fields=["supabase_user_id", "updated_at"])
            logger.info("Linked user %s to supabase id %s", existing.pk, supabase_id)
            return existing

    try:
        with transaction.atomic():
            user = User(
                username=_available_username(email, supabase_id),
                email=email,
                first_name=first_name[:150],
                last_name=last_name[:150],
                supabase_user_id=supabase_id,
                marketing_opt_in=bool(metadata.get("marketing_opt_in", False)),
            )
            user.set_unusable_password()
            user.save()
    except IntegrityError:
        # concurrent first request for the same token
        return User.objects.get(supabase_user_id=supabase_id)

    logger.info("Created user %s for supabase id %s", user.pk, supabase_id)
    return user


@transaction.atomic
def register_user(*, username, email, password, first_name="", last_name="", phone="",
                  marketing_opt_in=False) -> User:
    from loyalty.services import award_signup_bonus

    if User.objects.filter(username__iexact=username).exists():
        raise ConflictError("Username already taken")
    if email and User.objects.filter(email__iexact=email).exists():
        raise ConflictError("An account with this email already exists")

    user = User.objects.create_user(
        username=username,
        email=email,
        password=password,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        marketing_opt_in=marketing_opt_in,
    )
    award_signup_bonus(user)
    return user
