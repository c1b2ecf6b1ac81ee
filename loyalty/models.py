# loyalty/models.py

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from common.models import TimeStampedModel


class LoyaltyProgram(TimeStampedModel):
    """
    Earning rules. The newest row wins, active or not; with no row the
    defaults apply. Callers check ``is_active``.
    """

    name = models.CharField(max_length=100, default="Rewards")
    is_active = models.BooleanField(default=True)
    points_per_dollar = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        default=Decimal("1.00"),
        help_text="Points earned per 1.00 of order total.",
    )
    bonus_points_threshold = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("50.00"),
        help_text="Orders at or above this total earn the bonus multiplier.",
    )
    bonus_points_multiplier = models.DecimalField(
        max_digits=4, decimal_places=2, default=Decimal("1.50")
    )
    points_for_first_order = models.PositiveIntegerField(default=50)
    points_for_signup = models.PositiveIntegerField(default=100)

    def __str__(self):
        return self.name

    @classmethod
    def current(cls) -> "LoyaltyProgram":
        program = cls.objects.order_by("-updated_at", "-id").first()
        return program or cls()


class UserPoints(TimeStampedModel):
    """
    Running totals per user. Only the ledger in loyalty.services writes here.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="points_account",
    )
    points = models.IntegerField(default=0)
    total_earned = models.IntegerField(default=0)
    total_redeemed = models.IntegerField(default=0)
    last_earned_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name_plural = "user points"
        constraints = [
            models.CheckConstraint(
                condition=Q(points=F("total_earned") - F("total_redeemed")),
                name="user_points_balance_matches_totals",
            ),
        ]

    def __str__(self):
        return f"{self.user_id}: {self.points} pts"

    def clean(self):
        if self.points != self.total_earned - self.total_redeemed:
            raise ValidationError(
                {"points": "Points must equal total earned minus total redeemed."}
            )


class PointsTransaction(models.Model):
    """
    Append-only points log; the source of truth for audits and recovery.
    """

    EARNED = "earned"
    REDEEMED = "redeemed"
    TYPE_CHOICES = [
        (EARNED, "Earned"),
        (REDEEMED, "Redeemed"),
    ]

    SOURCE_EARN = "earn"
    SOURCE_REDEEM = "redeem"
    SOURCE_ADJUSTMENT = "admin_adjustment"
    SOURCE_RESTORE = "restore"
    SOURCE_CHOICES = [
        (SOURCE_EARN, "Earn"),
        (SOURCE_REDEEM, "Redeem"),
        (SOURCE_ADJUSTMENT, "Admin adjustment"),
        (SOURCE_RESTORE, "Restore"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="points_transactions",
    )
    type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    points = models.PositiveIntegerField()
    order = models.ForeignKey(
        "orders.Order",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="points_transactions",
    )
    description = models.CharField(max_length=255, blank=True, default="")
    order_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    source = models.CharField(max_length=32, choices=SOURCE_CHOICES, default=SOURCE_EARN)
    idempotency_key = models.CharField(max_length=128, null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="points_tx_user_created_idx"),
            models.Index(fields=["user", "type"], name="points_tx_user_type_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "idempotency_key"],
                condition=Q(idempotency_key__isnull=False),
                name="points_tx_unique_idempotency_key",
            ),
        ]

    def __str__(self):
        return f"{self.type} {self.points} for user {self.user_id}"

    @property
    def signed_points(self) -> int:
        return self.points if self.type == self.EARNED else -self.points


class PointsReward(TimeStampedModel):
    """
    Catalog entry a customer can exchange points for.
    """

    FIXED = "fixed"
    PERCENTAGE = "percentage"
    DELIVERY_FEE = "delivery_fee"
    DISCOUNT_TYPE_CHOICES = [
        (FIXED, "Fixed amount"),
        (PERCENTAGE, "Percentage"),
        (DELIVERY_FEE, "Delivery fee"),
    ]

    name = models.CharField(max_length=120)
    description = models.TextField(blank=True, default="")
    points_required = models.PositiveIntegerField()
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2)
    discount_type = models.CharField(max_length=16, choices=DISCOUNT_TYPE_CHOICES, default=FIXED)
    min_order_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    voucher_validity_days = models.PositiveIntegerField(default=30)
    max_uses_per_user = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["points_required", "id"]

    def __str__(self):
        return f"{self.name} ({self.points_required} pts)"


class Voucher(models.Model):
    """
    Discount bought with points. ``points_transaction`` is the redemption
    that paid for it.
    """

    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"
    STATUS_CHOICES = [
        (ACTIVE, "Active"),
        (USED, "Used"),
        (EXPIRED, "Expired"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="vouchers",
    )
    reward = models.ForeignKey(
        PointsReward,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="vouchers",
    )
    code = models.CharField(max_length=32, unique=True)
    points_spent = models.PositiveIntegerField()
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2)
    discount_type = models.CharField(
        max_length=16,
        choices=PointsReward.DISCOUNT_TYPE_CHOICES,
        default=PointsReward.FIXED,
    )
    min_order_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=ACTIVE)
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)
    order = models.ForeignKey(
        "orders.Order",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="vouchers",
    )
    points_transaction = models.ForeignKey(
        PointsTransaction,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="vouchers",
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["user", "status"], name="voucher_user_status_idx")]

    def __str__(self):
        return self.code

    @property
    def is_usable(self) -> bool:
        return self.status == self.ACTIVE and self.expires_at > timezone.now()
