# loyalty/audit.py
"""
Consistency checks between the points log, ``UserPoints`` and the legacy
``users.rewards`` column, plus the repairs that rebuild totals from the log.
"""

import logging
from dataclasses import dataclass

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Max, Min, Q, Sum

from common.errors import NotFoundError
from .models import PointsTransaction, UserPoints, Voucher

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_LIMIT = 100
RECOVERY_HISTORY_PREVIEW = 10


class NoTransactionHistoryError(NotFoundError):
    default_detail = "No transaction history found for recovery"


@dataclass(frozen=True)
class LogTotals:
    total_earned: int
    total_redeemed: int
    transaction_count: int
    first_transaction: object = None
    last_transaction: object = None

    @property
    def points(self) -> int:
        return self.total_earned - self.total_redeemed


def log_totals(user) -> LogTotals:
    agg = PointsTransaction.objects.filter(user=user).aggregate(
        earned=Sum("points", filter=Q(type=PointsTransaction.EARNED)),
        redeemed=Sum("points", filter=Q(type=PointsTransaction.REDEEMED)),
        count=Count("id"),
        first=Min("created_at"),
        last=Max("created_at"),
    )
    return LogTotals(
        total_earned=agg["earned"] or 0,
        total_redeemed=agg["redeemed"] or 0,
        transaction_count=agg["count"],
        first_transaction=agg["first"],
        last_transaction=agg["last"],
    )


def serialize_transaction(tx: PointsTransaction) -> dict:
    return {
        "id": tx.id,
        "type": tx.type,
        "points": tx.points,
        "orderId": tx.order_id,
        "description": tx.description,
        "orderAmount": str(tx.order_amount) if tx.order_amount is not None else None,
        "source": tx.source,
        "createdAt": tx.created_at,
    }


def serialize_user_points(account: UserPoints | None) -> dict | None:
    if account is None:
        return None
    return {
        "points": account.points,
        "totalEarned": account.total_earned,
        "totalRedeemed": account.total_redeemed,
        "lastEarnedAt": account.last_earned_at,
        "updatedAt": account.updated_at,
    }


def _discrepancy(kind, message, expected, actual):
    return {
        "type": kind,
        "message": message,
        "expected": expected,
        "actual": actual,
        "difference": actual - expected,
    }


def find_discrepancies(user, totals: LogTotals | None = None, account: UserPoints | None = None) -> list:
    totals = totals or log_totals(user)
    if account is None:
        account = UserPoints.objects.filter(user=user).first()
    found = []

    if account is None:
        if totals.transaction_count:
            found.append(_discrepancy(
                "missing_user_points",
                "Transactions exist but the user has no points record",
                totals.points, 0,
            ))
    else:
        if account.points != totals.points or account.total_earned != totals.total_earned \
                or account.total_redeemed != totals.total_redeemed:
            found.append(_discrepancy(
                "points_mismatch",
                "User points record does not match transaction history",
                totals.points, account.points,
            ))
        if account.points != account.total_earned - account.total_redeemed:
            found.append(_discrepancy(
                "invariant_violation",
                "Points do not equal total earned minus total redeemed",
                account.total_earned - account.total_redeemed, account.points,
            ))

    current = account.points if account else totals.points
    rewards = type(user).objects.filter(pk=user.pk).values_list("rewards", flat=True).first() or 0
    if rewards != current:
        found.append(_discrepancy(
            "legacy_rewards_mismatch",
            "Legacy rewards column does not match current points",
            current, rewards,
        ))
    return found


def audit_user(user, limit=DEFAULT_AUDIT_LIMIT, include_recovery_data=False) -> dict:
    totals = log_totals(user)
    account = UserPoints.objects.filter(user=user).first()
    legacy_rewards = type(user).objects.filter(pk=user.pk).values_list("rewards", flat=True).first() or 0
    discrepancies = find_discrepancies(user, totals, account)
    kinds = {d["type"] for d in discrepancies}

    transactions = PointsTransaction.objects.filter(user=user).order_by("-created_at", "-id")[:limit]
    report = {
        "userId": user.pk,
        "summary": {
            "totalPointsEarned": totals.total_earned,
            "totalPointsRedeemed": totals.total_redeemed,
            "currentPoints": account.points if account else 0,
            "calculatedPoints": totals.points,
            "totalTransactions": totals.transaction_count,
            "firstTransaction": totals.first_transaction,
            "lastTransaction": totals.last_transaction,
        },
        "transactions": [serialize_transaction(tx) for tx in transactions],
        "userPointsRecord": serialize_user_points(account),
        "legacyRewards": legacy_rewards,
        "dataIntegrity": {
            "transactionsMatchUserPoints": not (kinds & {"points_mismatch", "missing_user_points"}),
            "legacyRewardsMatch": "legacy_rewards_mismatch" not in kinds,
            "userPointsInvariantHolds": "invariant_violation" not in kinds,
            "discrepancies": discrepancies,
        },
    }

    if include_recovery_data:
        recommendations = []
        if discrepancies:
            recommendations.append({
                "type": "data_sync",
                "priority": "high",
                "message": "Recalculate user points from transaction history",
                "action": "sync_user_points",
            })
        if account and account.points > 0 and totals.transaction_count == 0:
            recommendations.append({
                "type": "missing_transactions",
                "priority": "medium",
                "message": "User has points but no transaction history",
                "action": "create_initial_transaction",
            })
        report["recoveryData"] = {
            "vouchers": list(
                Voucher.objects.filter(user=user).values(
                    "id", "code", "status", "points_spent", "discount_amount",
                    "discount_type", "expires_at", "used_at", "created_at",
                )
            ),
            "recommendations": recommendations,
        }
    return report


def _apply_totals(user, totals: LogTotals):
    """Overwrite UserPoints and users.rewards from log totals; caller holds a transaction."""
    account = UserPoints.objects.select_for_update().filter(user=user).first()
    before = serialize_user_points(account)
    rewards = type(user).objects.filter(pk=user.pk).values_list("rewards", flat=True).first() or 0
    changed = (
        account is None
        or rewards != totals.points
        or account.points != totals.points
        or account.total_earned != totals.total_earned
        or account.total_redeemed != totals.total_redeemed
    )
    if account is None:
        account = UserPoints.objects.create(
            user=user,
            points=totals.points,
            total_earned=totals.total_earned,
            total_redeemed=totals.total_redeemed,
            last_earned_at=totals.last_transaction,
        )
    elif changed:
        account.points = totals.points
        account.total_earned = totals.total_earned
        account.total_redeemed = totals.total_redeemed
        account.save(update_fields=["points", "total_earned", "total_redeemed", "updated_at"])
    type(user).objects.filter(pk=user.pk).update(rewards=totals.points)
    return before, serialize_user_points(account), changed


def sync_user_points(user) -> dict:
    """Rebuild the user's totals from the transaction log."""
    with transaction.atomic():
        totals = log_totals(user)
        before, after, changed = _apply_totals(user, totals)

    if changed:
        logger.warning("Synchronized points for user %s: %s -> %s", user.pk, before, after)
    return {
        "synchronized": changed,
        "message": "Points synchronized successfully" if changed else "Points already synchronized",
        "before": before,
        "after": after,
    }


def recover_user_points(user) -> dict:
    """Recreate a missing or damaged points record; requires transaction history."""
    with transaction.atomic():
        totals = log_totals(user)
        if totals.transaction_count == 0:
            raise NoTransactionHistoryError()
        _, after, _ = _apply_totals(user, totals)
        history = PointsTransaction.objects.filter(user=user).order_by("created_at", "id")[
            :RECOVERY_HISTORY_PREVIEW
        ]

    logger.warning("Recovered points for user %s from %s transactions", user.pk, totals.transaction_count)
    return {
        "message": "Points recovered from transaction history",
        "recoveredData": {
            "totalEarned": totals.total_earned,
            "totalRedeemed": totals.total_redeemed,
            "currentPoints": totals.points,
            "transactionCount": totals.transaction_count,
        },
        "userPointsRecord": after,
        "transactionHistory": [serialize_transaction(tx) for tx in history],
    }


def sync_all_users() -> dict:
    User = get_user_model()
    users = User.objects.filter(
        Q(points_account__isnull=False) | Q(points_transactions__isnull=False)
    ).distinct().order_by("pk")

    checked = synchronized = 0
    for user in users.iterator():
        checked += 1
        if sync_user_points(user)["synchronized"]:
            synchronized += 1
    logger.info("Bulk points sync: %s users checked, %s synchronized", checked, synchronized)
    return {"usersChecked": checked, "usersSynchronized": synchronized}
