"""
Audit, repair and backup tests for the points ledger.
"""
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db.models import F
from django.test import TransactionTestCase
from django.utils import timezone

from common.errors import ValidationError
from loyalty import audit, backup, services
from loyalty.models import LoyaltyProgram, PointsReward, PointsTransaction, UserPoints, Voucher
from loyalty.services import Earn, Redeem
from loyalty.tests import LoyaltyTestBase
from loyalty.views import PointsAuditView, PointsBackupView, PointsRecoveryView
from orders.models import Order


class AuditTests(LoyaltyTestBase):
    def setUp(self):
        super().setUp()
        services.apply(self.customer, Earn(points=100))
        services.apply(self.customer, Redeem(points=30))

    def _inflate(self, user, by):
        UserPoints.objects.filter(user=user).update(
            points=F("points") + by, total_earned=F("total_earned") + by
        )

    def test_clean_user_has_no_discrepancies(self):
        report = audit.audit_user(self.customer)

        self.assertEqual(report["summary"]["totalPointsEarned"], 100)
        self.assertEqual(report["summary"]["totalPointsRedeemed"], 30)
        self.assertEqual(report["summary"]["currentPoints"], 70)
        self.assertEqual(report["summary"]["calculatedPoints"], 70)
        self.assertEqual(report["summary"]["totalTransactions"], 2)
        self.assertTrue(report["dataIntegrity"]["transactionsMatchUserPoints"])
        self.assertTrue(report["dataIntegrity"]["legacyRewardsMatch"])
        self.assertEqual(report["dataIntegrity"]["discrepancies"], [])
        self.assertNotIn("recoveryData", report)

    def test_mismatch_detected_with_recommendation(self):
        self._inflate(self.customer, 400)

        report = audit.audit_user(self.customer, include_recovery_data=True)

        self.assertFalse(report["dataIntegrity"]["transactionsMatchUserPoints"])
        kinds = {d["type"] for d in report["dataIntegrity"]["discrepancies"]}
        self.assertIn("points_mismatch", kinds)
        self.assertIn("legacy_rewards_mismatch", kinds)
        actions = [r["action"] for r in report["recoveryData"]["recommendations"]]
        self.assertIn("sync_user_points", actions)

    def test_missing_points_record(self):
        UserPoints.objects.filter(user=self.customer).delete()
        kinds = {d["type"] for d in audit.find_discrepancies(self.customer)}
        self.assertIn("missing_user_points", kinds)

    def test_limit_applies_to_transaction_list(self):
        report = audit.audit_user(self.customer, limit=1)
        self.assertEqual(len(report["transactions"]), 1)
        self.assertEqual(report["summary"]["totalTransactions"], 2)

    def test_sync_rebuilds_from_log(self):
        self._inflate(self.customer, 400)

        result = audit.sync_user_points(self.customer)

        self.assertTrue(result["synchronized"])
        self.assertEqual(result["message"], "Points synchronized successfully")
        self.assertEqual(result["before"]["points"], 470)
        self.assertEqual(result["after"]["points"], 70)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.rewards, 70)

    def test_sync_is_noop_when_clean(self):
        result = audit.sync_user_points(self.customer)
        self.assertFalse(result["synchronized"])
        self.assertEqual(result["message"], "Points already synchronized")

    def test_sync_fixes_legacy_column_only(self):
        get_user_model().objects.filter(pk=self.customer.pk).update(rewards=7)
        result = audit.sync_user_points(self.customer)
        self.assertTrue(result["synchronized"])
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.rewards, 70)

    def test_recover_recreates_missing_record(self):
        UserPoints.objects.filter(user=self.customer).delete()

        result = audit.recover_user_points(self.customer)

        self.assertEqual(result["recoveredData"]["currentPoints"], 70)
        self.assertEqual(result["recoveredData"]["transactionCount"], 2)
        self.assertEqual(len(result["transactionHistory"]), 2)
        account = UserPoints.objects.get(user=self.customer)
        self.assertEqual((account.points, account.total_earned, account.total_redeemed), (70, 100, 30))

    def test_recover_without_history_is_not_found(self):
        with self.assertRaises(audit.NoTransactionHistoryError):
            audit.recover_user_points(self.staff)

    def test_sync_all_counts(self):
        services.apply(self.staff, Earn(points=5))
        self._inflate(self.customer, 10)

        result = audit.sync_all_users()

        self.assertEqual(result, {"usersChecked": 2, "usersSynchronized": 1})


class AuditApiTests(LoyaltyTestBase):
    def setUp(self):
        super().setUp()
        services.apply(self.customer, Earn(points=60))

    def test_customer_audits_self(self):
        response = PointsAuditView.as_view()(self._request("GET", "/api/v1/points/audit"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["userId"], self.customer.pk)
        self.assertNotIn("recoveryData", response.data)

    def test_customer_cannot_audit_others(self):
        response = PointsAuditView.as_view()(
            self._request("GET", "/api/v1/points/audit", {"userId": self.staff.pk})
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["kind"], "AUTHORIZATION_ERROR")

    def test_admin_audit_includes_recovery_data(self):
        response = PointsAuditView.as_view()(
            self._request("GET", "/api/v1/points/audit", {"userId": self.customer.pk}, user=self.admin)
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("recoveryData", response.data)

    def test_recovery_actions(self):
        view = PointsRecoveryView.as_view()

        denied = view(self._request("POST", "/api/v1/points/recovery", {"action": "sync", "userId": self.customer.pk}))
        synced = view(self._request(
            "POST", "/api/v1/points/recovery", {"action": "sync", "userId": self.customer.pk}, user=self.admin
        ))
        missing = view(self._request("POST", "/api/v1/points/recovery", {"action": "recover"}, user=self.admin))

        self.assertEqual(denied.status_code, 403)
        self.assertEqual(synced.status_code, 200)
        self.assertFalse(synced.data["synchronized"])
        self.assertEqual(missing.status_code, 400)

    def test_backup_create_for_user(self):
        response = PointsBackupView.as_view()(self._request(
            "POST", "/api/v1/points/backup", {"action": "create", "userId": self.customer.pk}, user=self.admin
        ))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["userId"], self.customer.pk)
        self.assertEqual(response.data["data"]["summary"]["totalEarned"], 60)


class BackupTests(LoyaltyTestBase):
    def setUp(self):
        super().setUp()
        self.reward = PointsReward.objects.create(
            name="$5 off", points_required=100, discount_amount=Decimal("5.00")
        )
        services.apply(self.customer, Earn(points=150, order_amount=Decimal("150.00")))
        services.redeem_reward(self.customer, self.reward.pk)
        services.apply(self.staff, Earn(points=20))

    def test_backup_shape(self):
        snapshot = backup.create_backup()

        self.assertEqual(snapshot["version"], "1.0")
        self.assertEqual(snapshot["userId"], "all")
        data = snapshot["data"]
        self.assertEqual(len(data["users"]), 3)
        self.assertEqual(len(data["userPoints"]), 2)
        self.assertEqual(len(data["pointsTransactions"]), 3)
        self.assertEqual(len(data["vouchers"]), 1)
        self.assertEqual(data["summary"]["totalEarned"], 170)
        self.assertEqual(data["summary"]["totalRedeemed"], 100)
        self.assertEqual(data["summary"]["currentPoints"], 70)
        self.assertEqual(data["summary"]["totalUsers"], 3)

    def test_single_user_backup(self):
        snapshot = backup.create_backup(self.staff)
        self.assertEqual(snapshot["userId"], self.staff.pk)
        self.assertEqual(len(snapshot["data"]["pointsTransactions"]), 1)
        self.assertNotIn("totalUsers", snapshot["data"]["summary"])

    def test_restore_inserts_only_missing_rows(self):
        snapshot = backup.create_backup()
        Voucher.objects.all().delete()
        PointsTransaction.objects.filter(user=self.customer).delete()
        UserPoints.objects.filter(user=self.customer).delete()

        result = backup.restore_backup(snapshot)

        self.assertEqual(result["usersRestored"], 0)
        self.assertEqual(result["userPointsRestored"], 1)
        self.assertEqual(result["transactionsRestored"], 2)
        self.assertEqual(result["vouchersRestored"], 1)
        self.assertEqual(result["errors"], [])
        self.assertEqual(UserPoints.objects.get(user=self.customer).points, 50)
        self.assertEqual(PointsTransaction.objects.filter(user=self.customer, source="restore").count(), 2)
        self.assertEqual(audit.find_discrepancies(self.customer), [])

    def test_restore_twice_is_noop(self):
        snapshot = backup.create_backup()
        result = backup.restore_backup(snapshot)
        self.assertEqual(
            [result[k] for k in ("usersRestored", "userPointsRestored", "transactionsRestored", "vouchersRestored")],
            [0, 0, 0, 0],
        )

    def test_bad_row_is_reported_not_fatal(self):
        snapshot = backup.create_backup(self.customer)
        PointsTransaction.objects.filter(user=self.customer).delete()
        snapshot["data"]["pointsTransactions"][0].pop("type")

        result = backup.restore_backup(snapshot)

        self.assertEqual(result["transactionsRestored"], 1)
        self.assertEqual(len(result["errors"]), 1)
        self.assertEqual(result["errors"][0]["section"], "pointsTransactions")

    def test_restore_rejects_unknown_version(self):
        snapshot = backup.create_backup()
        snapshot["version"] = "9.9"
        with self.assertRaises(ValidationError):
            backup.restore_backup(snapshot)


class RestoreCommitTests(TransactionTestCase):
    """Restores that actually commit, so deferred foreign keys are checked."""

    def setUp(self):
        User = get_user_model()
        self.customer = User.objects.create_user(username="customer", password="test-pass")
        reward = PointsReward.objects.create(
            name="$5 off", points_required=100, discount_amount=Decimal("5.00")
        )
        services.apply(self.customer, Earn(points=150))
        services.redeem_reward(self.customer, reward.pk)

    def test_rows_for_missing_user_are_reported(self):
        snapshot = backup.create_backup(self.customer)
        old_id = self.customer.pk
        self.customer.delete()
        replacement = get_user_model().objects.create_user(username="customer", password="test-pass")

        result = backup.restore_backup(snapshot)

        self.assertEqual(
            [result[k] for k in ("usersRestored", "userPointsRestored", "transactionsRestored", "vouchersRestored")],
            [0, 0, 0, 0],
        )
        sections = [error["section"] for error in result["errors"]]
        self.assertEqual(
            sections, ["users", "userPoints", "pointsTransactions", "pointsTransactions", "vouchers"]
        )
        self.assertIn(f"User {old_id} does not exist", result["errors"][1]["error"])
        self.assertFalse(PointsTransaction.objects.exists())
        self.assertFalse(UserPoints.objects.filter(user=replacement).exists())

    def test_good_rows_commit_alongside_bad_ones(self):
        snapshot = backup.create_backup(self.customer)
        PointsTransaction.objects.all().delete()
        snapshot["data"]["pointsTransactions"][0]["user_id"] = 999999

        result = backup.restore_backup(snapshot)

        self.assertEqual(result["transactionsRestored"], 1)
        self.assertEqual(len(result["errors"]), 1)
        self.assertEqual(PointsTransaction.objects.count(), 1)


class PointsCheckCommandTests(LoyaltyTestBase):
    def setUp(self):
        super().setUp()
        services.apply(self.customer, Earn(points=80))

    def test_clean_ledger(self):
        out = StringIO()
        call_command("points_check", stdout=out)
        self.assertIn("clean", out.getvalue())

    def test_mismatch_fails_then_fix_repairs(self):
        UserPoints.objects.filter(user=self.customer).update(
            points=F("points") + 5, total_earned=F("total_earned") + 5
        )

        with self.assertRaises(CommandError):
            call_command("points_check", "--verbose", stdout=StringIO())

        out = StringIO()
        call_command("points_check", "--fix", stdout=out)
        self.assertIn("Fixed: 1 users", out.getvalue())
        self.assertEqual(UserPoints.objects.get(user=self.customer).points, 80)

    def test_unknown_user(self):
        with self.assertRaises(CommandError):
            call_command("points_check", "--user", "999999", stdout=StringIO())


class BackfillCommandTests(LoyaltyTestBase):
    def test_backfill_credits_uncredited_orders(self):
        LoyaltyProgram.objects.create(points_for_first_order=0)
        order = Order.objects.create(user=self.customer, total=Decimal("18.50"), status=Order.DELIVERED)
        Order.objects.create(user=self.customer, total=Decimal("99.00"), status=Order.PENDING)

        out = StringIO()
        call_command("backfill_order_points", "--dry-run", stdout=out)
        self.assertIn(f"Order #{order.pk}", out.getvalue())
        self.assertFalse(PointsTransaction.objects.exists())

        call_command("backfill_order_points", stdout=StringIO())
        tx = PointsTransaction.objects.get(user=self.customer)
        self.assertEqual((tx.order_id, tx.points), (order.pk, 18))

        call_command("backfill_order_points", stdout=StringIO())
        self.assertEqual(PointsTransaction.objects.count(), 1)


class ExpireVouchersCommandTests(LoyaltyTestBase):
    def test_flags_only_past_due_vouchers(self):
        reward = PointsReward.objects.create(name="$5 off", points_required=50, discount_amount=Decimal("5.00"))
        services.apply(self.customer, Earn(points=50))
        services.apply(self.staff, Earn(points=50))
        stale = services.redeem_reward(self.customer, reward.pk).voucher
        fresh = services.redeem_reward(self.staff, reward.pk).voucher
        Voucher.objects.filter(pk=stale.pk).update(expires_at=timezone.now() - timedelta(hours=1))

        out = StringIO()
        call_command("expire_vouchers", stdout=out)

        self.assertIn("Expired 1 vouchers", out.getvalue())
        stale.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual((stale.status, fresh.status), (Voucher.EXPIRED, Voucher.ACTIVE))
