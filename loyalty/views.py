# loyalty/views.py
import logging

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from common.errors import AuthorizationError
from common.permissions import IsAdminRole, IsStaffRole
from common.roles import is_admin_role
from orders.models import Order
from . import audit, backup, services, vouchers
from .models import LoyaltyProgram, PointsReward, PointsTransaction
from .serializers import (
    AdjustPointsSerializer,
    AuditQuerySerializer,
    BackupSerializer,
    EarnPointsSerializer,
    LoyaltyProgramSerializer,
    PointsRewardSerializer,
    PointsTransactionSerializer,
    RecoverySerializer,
    RedeemPointsSerializer,
    VoucherSerializer,
    VoucherValidateSerializer,
)

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS = 20


def _idempotency_key(request, data):
    return data.get("idempotencyKey") or request.headers.get("Idempotency-Key") or None


def _user_or_404(user_id):
    return get_object_or_404(get_user_model(), pk=user_id)


class LoyaltyProgramView(generics.RetrieveUpdateAPIView):
    """
    GET /api/v1/loyalty/program
    PATCH /api/v1/loyalty/program
    """

    serializer_class = LoyaltyProgramSerializer
    http_method_names = ["get", "patch", "options"]

    def get_permissions(self):
        if self.request.method == "PATCH":
            return [IsAdminRole()]
        return [permissions.IsAuthenticated()]

    def get_object(self):
        program = LoyaltyProgram.current()
        if program.pk is None:
            program.save()
        return program


class PointsView(APIView):
    """
    GET /api/v1/points
    """

    def get(self, request):
        balance = services.balance_for(request.user)
        recent = PointsTransaction.objects.filter(user=request.user)[:RECENT_TRANSACTIONS]
        return Response({
            **balance.as_dict(),
            "transactions": PointsTransactionSerializer(recent, many=True).data,
        })


class EarnPointsView(APIView):
    """
    POST /api/v1/points/earn
    Staff credit points to a customer, usually for an order.
    """

    permission_classes = [IsStaffRole]

    def post(self, request):
        serializer = EarnPointsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        user = _user_or_404(data["userId"])
        order = None
        if data.get("orderId"):
            order = get_object_or_404(Order, pk=data["orderId"])

        balance = services.apply(
            user,
            services.Earn(
                points=data["points"],
                order=order,
                description=data.get("description") or None,
                order_amount=data.get("orderAmount"),
                idempotency_key=_idempotency_key(request, data),
                performed_by=request.user,
            ),
        )
        code = status.HTTP_200_OK if balance.replayed else status.HTTP_201_CREATED
        return Response(balance.as_dict(), status=code)


class RedeemPointsView(APIView):
    """
    POST /api/v1/points/redeem
    """

    def post(self, request):
        serializer = RedeemPointsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        reward = None
        if data.get("rewardId"):
            reward = get_object_or_404(PointsReward, pk=data["rewardId"], is_active=True)

        balance = services.apply(
            request.user,
            services.Redeem(
                points=data["points"],
                reward=reward,
                description=data.get("description") or None,
                idempotency_key=_idempotency_key(request, data),
            ),
        )
        code = status.HTTP_200_OK if balance.replayed else status.HTTP_201_CREATED
        return Response(balance.as_dict(), status=code)


class AdjustPointsView(APIView):
    """
    POST /api/v1/points/adjust
    """

    permission_classes = [IsAdminRole]

    def post(self, request):
        serializer = AdjustPointsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        balance = services.apply(
            _user_or_404(data["userId"]),
            services.AdminAdjustment(
                delta=data["delta"],
                reason=data["reason"],
                performed_by=request.user,
                idempotency_key=_idempotency_key(request, data),
            ),
        )
        logger.warning(
            "Admin %s adjusted points for user %s by %s: %s",
            request.user.pk, data["userId"], data["delta"], data["reason"],
        )
        return Response(balance.as_dict())


class PointsAuditView(APIView):
    """
    GET /api/v1/points/audit?limit=&includeRecoveryData=&userId=
    Admins may audit anyone and always get recovery data.
    """

    def get(self, request):
        query = AuditQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        admin = is_admin_role(request.user.role)
        if params.get("userId") and params["userId"] != request.user.pk:
            if not admin:
                raise AuthorizationError("Admin access required")
            user = _user_or_404(params["userId"])
        else:
            user = request.user

        report = audit.audit_user(
            user,
            limit=params["limit"],
            include_recovery_data=params["includeRecoveryData"] or admin,
        )
        return Response(report)


class PointsRecoveryView(APIView):
    """
    POST /api/v1/points/recovery
    {"action": "sync" | "recover" | "sync_all", "userId": ...}
    """

    permission_classes = [IsAdminRole]

    def post(self, request):
        serializer = RecoverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        action = serializer.validated_data["action"]

        if action == "sync_all":
            return Response(audit.sync_all_users())

        user = _user_or_404(serializer.validated_data["userId"])
        if action == "sync":
            return Response(audit.sync_user_points(user))
        return Response(audit.recover_user_points(user))


class PointsBackupView(APIView):
    """
    POST /api/v1/points/backup
    {"action": "create", "userId"?: ...} or {"action": "restore", "backupData": {...}}
    """

    permission_classes = [IsAdminRole]

    def post(self, request):
        serializer = BackupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if data["action"] == "create":
            user = _user_or_404(data["userId"]) if data.get("userId") else None
            return Response(backup.create_backup(user))

        result = backup.restore_backup(data["backupData"])
        logger.warning("Points backup restored by admin %s: %s", request.user.pk, result)
        return Response(result)


class RewardListView(generics.ListAPIView):
    """
    GET /api/v1/rewards
    """

    serializer_class = PointsRewardSerializer
    permission_classes = [permissions.AllowAny]
    pagination_class = None

    def get_queryset(self):
        return PointsReward.objects.filter(is_active=True)


class RewardRedeemView(APIView):
    """
    POST /api/v1/rewards/<reward_id>/redeem
    """

    def post(self, request, reward_id):
        balance = services.redeem_reward(request.user, reward_id)
        return Response(
            {**balance.as_dict(), "voucher": VoucherSerializer(balance.voucher).data},
            status=status.HTTP_201_CREATED,
        )


class VoucherListView(generics.ListAPIView):
    """
    GET /api/v1/vouchers
    """

    serializer_class = VoucherSerializer
    pagination_class = None

    def get_queryset(self):
        return vouchers.active_vouchers(self.request.user).select_related("reward")


class VoucherValidateView(APIView):
    """
    POST /api/v1/vouchers/validate
    """

    def post(self, request):
        serializer = VoucherValidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vouchers.expire_stale_vouchers(request.user)
        quote = vouchers.validate_voucher(
            request.user,
            serializer.validated_data["code"],
            serializer.validated_data["orderAmount"],
        )
        return Response(quote.as_dict())
