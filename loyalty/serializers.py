# loyalty/serializers.py

from rest_framework import serializers

from .models import LoyaltyProgram, PointsReward, PointsTransaction, Voucher
from .services import MAX_POINTS_PER_TRANSACTION


class LoyaltyProgramSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoyaltyProgram
        fields = [
            "id",
            "name",
            "is_active",
            "points_per_dollar",
            "bonus_points_threshold",
            "bonus_points_multiplier",
            "points_for_first_order",
            "points_for_signup",
            "updated_at",
        ]
        read_only_fields = ["id", "updated_at"]


class PointsTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PointsTransaction
        fields = [
            "id",
            "type",
            "points",
            "order",
            "description",
            "order_amount",
            "source",
            "created_at",
        ]


class PointsRewardSerializer(serializers.ModelSerializer):
    class Meta:
        model = PointsReward
        fields = [
            "id",
            "name",
            "description",
            "points_required",
            "discount_amount",
            "discount_type",
            "min_order_amount",
            "voucher_validity_days",
            "max_uses_per_user",
        ]


class VoucherSerializer(serializers.ModelSerializer):
    reward_name = serializers.CharField(source="reward.name", read_only=True, default=None)

    class Meta:
        model = Voucher
        fields = [
            "id",
            "code",
            "reward",
            "reward_name",
            "points_spent",
            "discount_amount",
            "discount_type",
            "min_order_amount",
            "status",
            "expires_at",
            "used_at",
            "created_at",
        ]


def _points_field(**kwargs):
    return serializers.IntegerField(min_value=1, max_value=MAX_POINTS_PER_TRANSACTION, **kwargs)


class EarnPointsSerializer(serializers.Serializer):
    userId = serializers.IntegerField()
    points = _points_field()
    orderId = serializers.IntegerField(required=False, allow_null=True)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    orderAmount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    idempotencyKey = serializers.CharField(max_length=128, required=False, allow_blank=True)


class RedeemPointsSerializer(serializers.Serializer):
    points = _points_field()
    rewardId = serializers.IntegerField(required=False, allow_null=True)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    idempotencyKey = serializers.CharField(max_length=128, required=False, allow_blank=True)


class AdjustPointsSerializer(serializers.Serializer):
    userId = serializers.IntegerField()
    delta = serializers.IntegerField(
        min_value=-MAX_POINTS_PER_TRANSACTION, max_value=MAX_POINTS_PER_TRANSACTION
    )
    reason = serializers.CharField(max_length=255)
    idempotencyKey = serializers.CharField(max_length=128, required=False, allow_blank=True)

    def validate_delta(self, value):
        if value == 0:
            raise serializers.ValidationError("delta must be non-zero")
        return value


class AuditQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=1000, required=False, default=100)
    includeRecoveryData = serializers.BooleanField(required=False, default=False)
    userId = serializers.IntegerField(required=False)


class RecoverySerializer(serializers.Serializer):
    ACTIONS = ["sync", "recover", "sync_all"]

    action = serializers.ChoiceField(choices=ACTIONS)
    userId = serializers.IntegerField(required=False)

    def validate(self, attrs):
        if attrs["action"] != "sync_all" and not attrs.get("userId"):
            raise serializers.ValidationError({"userId": "This field is required."})
        return attrs


class BackupSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["create", "restore"])
    userId = serializers.IntegerField(required=False)
    backupData = serializers.JSONField(required=False)

    def validate(self, attrs):
        if attrs["action"] == "restore" and not attrs.get("backupData"):
            raise serializers.ValidationError({"backupData": "Backup data is required for restore."})
        return attrs


class VoucherValidateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=32)
    orderAmount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
