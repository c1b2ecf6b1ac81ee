# loyalty/backup.py
"""
JSON snapshots of points data (one user or everyone) and a restore that only
inserts rows which are missing.
"""

import logging
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.color import no_style
from django.db import DatabaseError, connection, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from common.db import run_in_transaction
from common.errors import ValidationError
from orders.models import Order
from .models import PointsReward, PointsTransaction, UserPoints, Voucher

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"

USER_FIELDS = [
    "id", "username", "email", "first_name", "last_name", "phone",
    "role", "rewards", "supabase_user_id", "marketing_opt_in", "date_joined",
]
USER_POINTS_FIELDS = [
    "user_id", "points", "total_earned", "total_redeemed",
    "last_earned_at", "created_at", "updated_at",
]
TRANSACTION_FIELDS = [
    "id", "user_id", "type", "points", "order_id", "description",
    "order_amount", "source", "idempotency_key", "created_at",
]
VOUCHER_FIELDS = [
    "id", "user_id", "reward_id", "code", "points_spent", "discount_amount",
    "discount_type", "min_order_amount", "status", "expires_at", "used_at",
    "order_id", "points_transaction_id", "created_at",
]


def _plain(value):
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _rows(queryset, fields):
    return [{k: _plain(v) for k, v in row.items()} for row in queryset.values(*fields)]


def _summary(points_rows, transaction_rows, voucher_rows):
    earned = sum(r["points"] for r in transaction_rows if r["type"] == PointsTransaction.EARNED)
    redeemed = sum(r["points"] for r in transaction_rows if r["type"] == PointsTransaction.REDEEMED)
    times = sorted(r["created_at"] for r in transaction_rows if r["created_at"])
    return {
        "totalEarned": earned,
        "totalRedeemed": redeemed,
        "currentPoints": sum(r["points"] for r in points_rows),
        "totalTransactions": len(transaction_rows),
        "totalVouchers": len(voucher_rows),
        "firstTransaction": times[0] if times else None,
        "lastTransaction": times[-1] if times else None,
    }


def create_backup(user=None) -> dict:
    User = get_user_model()
    users = User.objects.all() if user is None else User.objects.filter(pk=user.pk)
    scope = {} if user is None else {"user": user}

    user_rows = _rows(users.order_by("pk"), USER_FIELDS)
    points_rows = _rows(UserPoints.objects.filter(**scope).order_by("user_id"), USER_POINTS_FIELDS)
    transaction_rows = _rows(
        PointsTransaction.objects.filter(**scope).order_by("created_at", "id"), TRANSACTION_FIELDS
    )
    voucher_rows = _rows(Voucher.objects.filter(**scope).order_by("created_at", "id"), VOUCHER_FIELDS)

    summary = _summary(points_rows, transaction_rows, voucher_rows)
    if user is None:
        summary["totalUsers"] = len(user_rows)

    logger.info(
        "Created points backup for %s: %s transactions",
        "all users" if user is None else f"user {user.pk}", len(transaction_rows),
    )
    return {
        "timestamp": timezone.now().isoformat(),
        "version": BACKUP_VERSION,
        "userId": "all" if user is None else user.pk,
        "data": {
            "users": user_rows,
            "userPoints": points_rows,
            "pointsTransactions": transaction_rows,
            "vouchers": voucher_rows,
            "summary": summary,
        },
    }


def _dt(value):
    if not value:
        return None
    parsed = parse_datetime(value) if isinstance(value, str) else value
    if parsed is not None and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, timezone.get_default_timezone())
    return parsed


def _existing_fk(model, pk):
    if pk is None:
        return None
    return pk if model.objects.filter(pk=pk).exists() else None


def _require_user(user_id):
    if not get_user_model().objects.filter(pk=user_id).exists():
        raise ValueError(f"User {user_id} does not exist")


def _restore_user(row):
    User = get_user_model()
    if User.objects.filter(pk=row["id"]).exists():
        return False
    user = User(
        id=row["id"],
        username=row["username"],
        email=row.get("email") or "",
        first_name=row.get("first_name") or "",
        last_name=row.get("last_name") or "",
        phone=row.get("phone") or "",
        role=row.get("role") or "customer",
        rewards=row.get("rewards") or 0,
        supabase_user_id=row.get("supabase_user_id"),
        marketing_opt_in=bool(row.get("marketing_opt_in")),
    )
    if row.get("date_joined"):
        user.date_joined = _dt(row["date_joined"])
    user.set_unusable_password()
    user.save()
    return True


def _restore_user_points(row):
    if UserPoints.objects.filter(user_id=row["user_id"]).exists():
        return False
    _require_user(row["user_id"])
    account = UserPoints.objects.create(
        user_id=row["user_id"],
        points=row["points"],
        total_earned=row["total_earned"],
        total_redeemed=row["total_redeemed"],
        last_earned_at=_dt(row.get("last_earned_at")),
    )
    if row.get("created_at"):
        UserPoints.objects.filter(pk=account.pk).update(created_at=_dt(row["created_at"]))
    return True


def _restore_transaction(row):
    if PointsTransaction.objects.filter(pk=row["id"]).exists():
        return False
    _require_user(row["user_id"])
    PointsTransaction.objects.create(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        points=row["points"],
        order_id=_existing_fk(Order, row.get("order_id")),
        description=row.get("description") or "",
        order_amount=row.get("order_amount"),
        source=PointsTransaction.SOURCE_RESTORE,
        idempotency_key=row.get("idempotency_key"),
        created_at=_dt(row.get("created_at")) or timezone.now(),
    )
    return True


def _restore_voucher(row):
    if Voucher.objects.filter(pk=row["id"]).exists() or Voucher.objects.filter(code=row["code"]).exists():
        return False
    _require_user(row["user_id"])
    Voucher.objects.create(
        id=row["id"],
        user_id=row["user_id"],
        reward_id=_existing_fk(PointsReward, row.get("reward_id")),
        code=row["code"],
        points_spent=row["points_spent"],
        discount_amount=row["discount_amount"],
        discount_type=row.get("discount_type") or PointsReward.FIXED,
        min_order_amount=row.get("min_order_amount"),
        status=row.get("status") or Voucher.ACTIVE,
        expires_at=_dt(row["expires_at"]),
        used_at=_dt(row.get("used_at")),
        order_id=_existing_fk(Order, row.get("order_id")),
        points_transaction_id=_existing_fk(PointsTransaction, row.get("points_transaction_id")),
        created_at=_dt(row.get("created_at")) or timezone.now(),
    )
    return True


def _reset_sequences():
    """Move id sequences past restored ids (no-op on SQLite)."""
    statements = connection.ops.sequence_reset_sql(
        no_style(), [get_user_model(), PointsTransaction, Voucher]
    )
    if statements:
        with connection.cursor() as cursor:
            for sql in statements:
                cursor.execute(sql)


RESTORE_STEPS = [
    ("users", "usersRestored", _restore_user),
    ("userPoints", "userPointsRestored", _restore_user_points),
    ("pointsTransactions", "transactionsRestored", _restore_transaction),
    ("vouchers", "vouchersRestored", _restore_voucher),
]


def _restore_rows(data):
    result = {counter: 0 for _, counter, _ in RESTORE_STEPS}
    errors = []
    for section, counter, restore_row in RESTORE_STEPS:
        for row in data.get(section) or []:
            try:
                with transaction.atomic():
                    if restore_row(row):
                        result[counter] += 1
            except (DatabaseError, KeyError, TypeError, ValueError) as exc:
                errors.append({"section": section, "row": row.get("id", row.get("user_id")), "error": str(exc)})
    _reset_sequences()
    return result, errors


def restore_backup(backup) -> dict:
    """
    Insert every row of ``backup`` that does not exist yet. A row that fails
    is reported in ``errors`` and does not stop the others.
    """
    if not isinstance(backup, dict) or not isinstance(backup.get("data"), dict):
        raise ValidationError("backupData is required")
    if backup.get("version") != BACKUP_VERSION:
        raise ValidationError(f"Unsupported backup version {backup.get('version')!r}")

    result, errors = run_in_transaction(_restore_rows, backup["data"])

    logger.info("Restored points backup: %s (%s errors)", result, len(errors))
    return {**result, "errors": errors}
