# loyalty/urls.py

from django.urls import path

from .views import (
    AdjustPointsView,
    EarnPointsView,
    LoyaltyProgramView,
    PointsAuditView,
    PointsBackupView,
    PointsRecoveryView,
    PointsView,
    RedeemPointsView,
    RewardListView,
    RewardRedeemView,
    VoucherListView,
    VoucherValidateView,
)

app_name = "loyalty"

urlpatterns = [
    path("loyalty/program", LoyaltyProgramView.as_view(), name="program"),
    path("points", PointsView.as_view(), name="points"),
    path("points/earn", EarnPointsView.as_view(), name="points-earn"),
    path("points/redeem", RedeemPointsView.as_view(), name="points-redeem"),
    path("points/adjust", AdjustPointsView.as_view(), name="points-adjust"),
    path("points/audit", PointsAuditView.as_view(), name="points-audit"),
    path("points/recovery", PointsRecoveryView.as_view(), name="points-recovery"),
    path("points/backup", PointsBackupView.as_view(), name="points-backup"),
    path("rewards", RewardListView.as_view(), name="rewards"),
    path("rewards/<int:reward_id>/redeem", RewardRedeemView.as_view(), name="reward-redeem"),
    path("vouchers", VoucherListView.as_view(), name="vouchers"),
    path("vouchers/validate", VoucherValidateView.as_view(), name="voucher-validate"),
]
