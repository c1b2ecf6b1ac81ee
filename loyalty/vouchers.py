# loyalty/vouchers.py
import secrets
import string
from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.utils import timezone

from common.errors import NotFoundError, ValidationError
from .models import PointsReward, Voucher

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_SUFFIX_LENGTH = 6
CODE_PREFIXES = {
    PointsReward.PERCENTAGE: "PCT",
    PointsReward.DELIVERY_FEE: "SHIP",
    PointsReward.FIXED: "SAVE",
}
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class VoucherQuote:
    voucher: Voucher
    discount: Decimal
    applies_to_delivery_fee: bool

    def as_dict(self) -> dict:
        return {
            "valid": True,
            "code": self.voucher.code,
            "discountType": self.voucher.discount_type,
            "discountAmount": str(self.voucher.discount_amount),
            "discount": str(self.discount),
            "appliesToDeliveryFee": self.applies_to_delivery_fee,
            "expiresAt": self.voucher.expires_at,
        }


def generate_code(discount_type: str, amount) -> str:
    prefix = CODE_PREFIXES.get(discount_type, "SAVE")
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))
    return f"{prefix}{int(Decimal(amount))}-{suffix}"


def _unique_code(discount_type, amount) -> str:
    while True:
        code = generate_code(discount_type, amount)
        if not Voucher.objects.filter(code=code).exists():
            return code


def issue_voucher(user, reward: PointsReward, points_spent: int, points_transaction=None) -> Voucher:
    return Voucher.objects.create(
        user=user,
        reward=reward,
        code=_unique_code(reward.discount_type, reward.discount_amount),
        points_spent=points_spent,
        discount_amount=reward.discount_amount,
        discount_type=reward.discount_type,
        min_order_amount=reward.min_order_amount,
        expires_at=timezone.now() + timedelta(days=reward.voucher_validity_days),
        points_transaction=points_transaction,
    )


def discount_for(voucher: Voucher, order_amount: Decimal) -> Decimal:
    if voucher.discount_type == PointsReward.PERCENTAGE:
        return (order_amount * voucher.discount_amount / Decimal("100")).quantize(CENTS, rounding=ROUND_HALF_UP)
    if voucher.discount_type == PointsReward.DELIVERY_FEE:
        return voucher.discount_amount
    return min(voucher.discount_amount, order_amount)


def validate_voucher(user, code: str, order_amount) -> VoucherQuote:
    """Read-only check of ``code`` against ``order_amount``."""
    order_amount = Decimal(str(order_amount or 0))
    voucher = Voucher.objects.filter(user=user, code=(code or "").strip().upper()).first()
    if voucher is None:
        raise NotFoundError("Voucher not found")
    if voucher.status == Voucher.EXPIRED or (
        voucher.status == Voucher.ACTIVE and voucher.expires_at <= timezone.now()
    ):
        raise ValidationError("Voucher has expired")
    if voucher.status != Voucher.ACTIVE:
        raise ValidationError(f"Voucher is {voucher.status}")
    if voucher.min_order_amount and order_amount < voucher.min_order_amount:
        raise ValidationError(
            f"Order total must be at least ${voucher.min_order_amount} to use this voucher"
        )
    return VoucherQuote(
        voucher=voucher,
        discount=discount_for(voucher, order_amount),
        applies_to_delivery_fee=voucher.discount_type == PointsReward.DELIVERY_FEE,
    )


def expire_stale_vouchers(user=None) -> int:
    """Flag active vouchers past their expiry; returns how many changed."""
    stale = Voucher.objects.filter(status=Voucher.ACTIVE, expires_at__lte=timezone.now())
    if user is not None:
        stale = stale.filter(user=user)
    return stale.update(status=Voucher.EXPIRED)


def mark_used(voucher: Voucher, order) -> None:
    voucher.status = Voucher.USED
    voucher.used_at = timezone.now()
    voucher.order = order
    voucher.save(update_fields=["status", "used_at", "order"])


def active_vouchers(user):
    return Voucher.objects.filter(user=user, status=Voucher.ACTIVE, expires_at__gt=timezone.now())
