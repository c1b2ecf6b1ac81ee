# loyalty/services.py
"""
The points ledger.

Every change to a user's points goes through ``apply(user, entry)``. It locks
the user's ``UserPoints`` row, appends a ``PointsTransaction``, keeps
``points == total_earned - total_redeemed`` and mirrors the balance into the
legacy ``users.rewards`` column, all inside one database transaction.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Any

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from common.errors import AppError, ErrorKind, NotFoundError, ValidationError
from .models import LoyaltyProgram, PointsReward, PointsTransaction, UserPoints, Voucher
from .vouchers import issue_voucher

logger = logging.getLogger(__name__)

MAX_POINTS_PER_TRANSACTION = 10_000


class LedgerError(ValidationError):
    default_detail = "Invalid points operation"


class InsufficientPointsError(AppError):
    kind = ErrorKind.VALIDATION

    def __init__(self, available: int, requested: int):
        super().__init__(
            f"Insufficient points. You have {available} points but need {requested} points.",
            details={"available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


@dataclass(frozen=True)
class Earn:
    points: int
    order: Any = None
    description: str | None = None
    order_amount: Decimal | None = None
    idempotency_key: str | None = None
    performed_by: Any = None


@dataclass(frozen=True)
class Redeem:
    points: int
    reward: PointsReward | None = None
    description: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class AdminAdjustment:
    delta: int
    reason: str
    performed_by: Any = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class Balance:
    points: int
    total_earned: int
    total_redeemed: int
    transaction_id: int | None = None
    voucher: Voucher | None = None
    replayed: bool = False

    @classmethod
    def of(cls, account: UserPoints, **extra) -> "Balance":
        return cls(
            points=account.points,
            total_earned=account.total_earned,
            total_redeemed=account.total_redeemed,
            **extra,
        )

    def as_dict(self) -> dict:
        data = {
            "points": self.points,
            "totalEarned": self.total_earned,
            "totalRedeemed": self.total_redeemed,
            "transactionId": self.transaction_id,
            "replayed": self.replayed,
        }
        if self.voucher is not None:
            data["voucher"] = {
                "id": self.voucher.id,
                "code": self.voucher.code,
                "expiresAt": self.voucher.expires_at,
            }
        return data


def _validate_points(points, field="points") -> int:
    if isinstance(points, bool) or not isinstance(points, int):
        raise LedgerError(f"{field} must be a whole number")
    if points <= 0:
        raise LedgerError(f"{field} must be positive")
    if points > MAX_POINTS_PER_TRANSACTION:
        raise LedgerError(f"{field} cannot exceed {MAX_POINTS_PER_TRANSACTION} per transaction")
    return points


def _validate(entry):
    if isinstance(entry, (Earn, Redeem)):
        _validate_points(entry.points)
    elif isinstance(entry, AdminAdjustment):
        if isinstance(entry.delta, bool) or not isinstance(entry.delta, int) or entry.delta == 0:
            raise LedgerError("delta must be a non-zero whole number")
        _validate_points(abs(entry.delta), field="delta")
        if not (entry.reason or "").strip():
            raise LedgerError("reason is required for adjustments")
    else:
        raise TypeError(f"Unknown ledger entry {entry!r}")


def _lock_account(user) -> UserPoints:
    account, _ = UserPoints.objects.select_for_update().get_or_create(user=user)
    return account


def _mirror_legacy_rewards(user, points: int) -> None:
    get_user_model().objects.filter(pk=user.pk).update(rewards=points)
    user.rewards = points


def _credit(account, points, **tx_fields) -> PointsTransaction:
    account.total_earned += points
    account.points = account.total_earned - account.total_redeemed
    account.last_earned_at = timezone.now()
    account.save(update_fields=["total_earned", "points", "last_earned_at", "updated_at"])
    return PointsTransaction.objects.create(
        user_id=account.user_id, type=PointsTransaction.EARNED, points=points, **tx_fields
    )


def _debit(account, points, **tx_fields) -> PointsTransaction:
    if account.points < points:
        raise InsufficientPointsError(account.points, points)
    account.total_redeemed += points
    account.points = account.total_earned - account.total_redeemed
    account.save(update_fields=["total_redeemed", "points", "updated_at"])
    return PointsTransaction.objects.create(
        user_id=account.user_id, type=PointsTransaction.REDEEMED, points=points, **tx_fields
    )


def _check_reward_limit(user, reward: PointsReward) -> None:
    used = Voucher.objects.filter(user=user, reward=reward).count()
    if used >= reward.max_uses_per_user:
        raise ValidationError(
            f"You have already redeemed this reward the maximum number of times ({reward.max_uses_per_user})."
        )


def apply(user, entry) -> Balance:
    """
    Record one ledger entry for ``user`` and return the resulting balance.

    Replaying an entry whose ``idempotency_key`` was already recorded for the
    user writes nothing and returns the current balance with ``replayed``.
    Raises ``InsufficientPointsError`` / ``LedgerError`` without any state
    change.
    """
    _validate(entry)
    voucher = None

    with transaction.atomic():
        account = _lock_account(user)

        if entry.idempotency_key:
            existing = PointsTransaction.objects.filter(
                user=user, idempotency_key=entry.idempotency_key
            ).first()
            if existing:
                logger.info(
                    "Replayed points entry %s for user %s", entry.idempotency_key, user.pk
                )
                return Balance.of(account, transaction_id=existing.id, replayed=True)

        if isinstance(entry, Earn):
            tx = _credit(
                account,
                entry.points,
                order=entry.order,
                order_amount=entry.order_amount,
                description=entry.description or f"Earned {entry.points} points",
                source=PointsTransaction.SOURCE_EARN,
                idempotency_key=entry.idempotency_key,
                created_by=entry.performed_by,
            )
        elif isinstance(entry, Redeem):
            if entry.reward is not None:
                _check_reward_limit(user, entry.reward)
            description = entry.description or (
                f"Redeemed for {entry.reward.name}" if entry.reward else f"Redeemed {entry.points} points"
            )
            tx = _debit(
                account,
                entry.points,
                description=description,
                source=PointsTransaction.SOURCE_REDEEM,
                idempotency_key=entry.idempotency_key,
            )
            if entry.reward is not None:
                voucher = issue_voucher(user, entry.reward, points_spent=entry.points, points_transaction=tx)
        else:
            tx_fields = dict(
                description=entry.reason.strip()[:255],
                source=PointsTransaction.SOURCE_ADJUSTMENT,
                idempotency_key=entry.idempotency_key,
                created_by=entry.performed_by,
            )
            if entry.delta > 0:
                tx = _credit(account, entry.delta, **tx_fields)
            else:
                tx = _debit(account, -entry.delta, **tx_fields)

        _mirror_legacy_rewards(user, account.points)

    logger.info(
        "Points %s for user %s: %s (balance %s)",
        tx.type, user.pk, tx.points, account.points,
    )
    return Balance.of(account, transaction_id=tx.id, voucher=voucher)


def balance_for(user) -> Balance:
    account = UserPoints.objects.filter(user=user).first()
    if account is None:
        return Balance(points=0, total_earned=0, total_redeemed=0)
    return Balance.of(account)


def points_for_order(amount, program: LoyaltyProgram | None = None) -> int:
    """
    floor(amount * points_per_dollar), then floor(points * multiplier) when the
    order reaches the bonus threshold.
    """
    program = program or LoyaltyProgram.current()
    amount = Decimal(str(amount or 0))
    if amount <= 0:
        return 0
    points = (amount * program.points_per_dollar).to_integral_value(rounding=ROUND_FLOOR)
    if amount >= program.bonus_points_threshold:
        points = (points * program.bonus_points_multiplier).to_integral_value(rounding=ROUND_FLOOR)
    return int(points)


def order_earn_key(order) -> str:
    return f"order:{order.pk}:earned"


def award_points_for_order(order) -> Balance | None:
    """
    Credit points for a completed order. Safe to call more than once per
    order. Guest orders earn nothing.
    """
    from orders.models import Order

    user = order.user
    if user is None:
        return None
    program = LoyaltyProgram.current()
    if not program.is_active:
        return None

    points = min(points_for_order(order.total, program), MAX_POINTS_PER_TRANSACTION)
    balance = None
    if points > 0:
        balance = apply(
            user,
            Earn(
                points=points,
                order=order,
                order_amount=order.total,
                description=f"Order #{order.pk}",
                idempotency_key=order_earn_key(order),
            ),
        )

    first_order = not (
        Order.objects.filter(user=user, status__in=Order.FULFILLED_STATUSES)
        .exclude(pk=order.pk)
        .exists()
    )
    if first_order and program.points_for_first_order:
        balance = apply(
            user,
            Earn(
                points=program.points_for_first_order,
                order=order,
                description="First order bonus",
                idempotency_key=f"order:{order.pk}:first-order-bonus",
            ),
        )
    return balance


def award_signup_bonus(user) -> Balance | None:
    program = LoyaltyProgram.current()
    if not (program.is_active and program.points_for_signup):
        return None
    return apply(
        user,
        Earn(
            points=program.points_for_signup,
            description="Welcome bonus",
            idempotency_key="signup-bonus",
        ),
    )


def redeem_reward(user, reward_id) -> Balance:
    """Exchange points for a voucher from the rewards catalog."""
    reward = PointsReward.objects.filter(pk=reward_id, is_active=True).first()
    if reward is None:
        raise NotFoundError("Reward not found or inactive")
    return apply(user, Redeem(points=reward.points_required, reward=reward))
