"""
Tests for the points ledger, rewards and vouchers.
"""
import re
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from common.errors import NotFoundError, ValidationError
from loyalty import services, vouchers
from loyalty.models import LoyaltyProgram, PointsReward, PointsTransaction, UserPoints, Voucher
from loyalty.services import (
    AdminAdjustment,
    Earn,
    InsufficientPointsError,
    LedgerError,
    Redeem,
)
from loyalty.views import (
    AdjustPointsView,
    EarnPointsView,
    LoyaltyProgramView,
    PointsView,
    RedeemPointsView,
    RewardRedeemView,
    VoucherValidateView,
)
from orders.models import Order


class LoyaltyTestBase(TestCase):
    """Customer, staff and admin users plus the request helper."""

    def setUp(self):
        self.factory = APIRequestFactory()
        User = get_user_model()
        self.customer = User.objects.create_user(
            username="customer", email="customer@example.com", password="test-pass"
        )
        self.staff = User.objects.create_user(
            username="cashier", email="cashier@example.com", password="test-pass", role="employee"
        )
        self.admin = User.objects.create_user(
            username="owner", email="owner@example.com", password="test-pass", role="admin"
        )

    def _request(self, method, path, data=None, user=None, **extra):
        user = user or self.customer
        if method == "GET":
            request = self.factory.get(path, data or {}, **extra)
        elif method == "POST":
            request = self.factory.post(path, data or {}, format="json", **extra)
        else:
            raise ValueError(f"Unsupported method: {method}")
        force_authenticate(request, user=user)
        return request

    def _account(self, user):
        return UserPoints.objects.get(user=user)


class LedgerTests(LoyaltyTestBase):
    def test_earn_updates_totals_log_and_legacy_column(self):
        balance = services.apply(self.customer, Earn(points=120, description="Order #1"))

        self.assertEqual(balance.points, 120)
        self.assertEqual(balance.total_earned, 120)
        self.assertEqual(balance.total_redeemed, 0)
        account = self._account(self.customer)
        self.assertEqual(account.points, account.total_earned - account.total_redeemed)
        self.assertIsNotNone(account.last_earned_at)
        tx = PointsTransaction.objects.get(pk=balance.transaction_id)
        self.assertEqual((tx.type, tx.points, tx.source), ("earned", 120, "earn"))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.rewards, 120)

    def test_redeem_within_balance(self):
        services.apply(self.customer, Earn(points=200))
        balance = services.apply(self.customer, Redeem(points=150))

        self.assertEqual(balance.points, 50)
        self.assertEqual(balance.total_earned, 200)
        self.assertEqual(balance.total_redeemed, 150)
        self.assertEqual(PointsTransaction.objects.filter(user=self.customer).count(), 2)

    def test_insufficient_points_changes_nothing(self):
        services.apply(self.customer, Earn(points=30))

        with self.assertRaises(InsufficientPointsError) as ctx:
            services.apply(self.customer, Redeem(points=50))

        self.assertEqual(
            str(ctx.exception.detail),
            "Insufficient points. You have 30 points but need 50 points.",
        )
        self.assertEqual(ctx.exception.status_code, 400)
        account = self._account(self.customer)
        self.assertEqual((account.points, account.total_redeemed), (30, 0))
        self.assertEqual(PointsTransaction.objects.filter(user=self.customer).count(), 1)

    def test_redeem_without_account_is_insufficient(self):
        with self.assertRaises(InsufficientPointsError):
            services.apply(self.customer, Redeem(points=1))
        self.assertFalse(UserPoints.objects.filter(user=self.customer).exists())

    def test_rejects_invalid_amounts(self):
        for bad in (0, -5, 10_001, 2.5, True):
            with self.subTest(points=bad):
                with self.assertRaises(LedgerError):
                    services.apply(self.customer, Earn(points=bad))
        self.assertFalse(PointsTransaction.objects.exists())

    def test_idempotency_key_replays_without_writing(self):
        first = services.apply(self.customer, Earn(points=40, idempotency_key="pos-1"))
        second = services.apply(self.customer, Earn(points=40, idempotency_key="pos-1"))

        self.assertFalse(first.replayed)
        self.assertTrue(second.replayed)
        self.assertEqual(second.transaction_id, first.transaction_id)
        self.assertEqual(second.points, 40)
        self.assertEqual(PointsTransaction.objects.filter(user=self.customer).count(), 1)

    def test_same_key_is_independent_per_user(self):
        services.apply(self.customer, Earn(points=10, idempotency_key="promo"))
        services.apply(self.staff, Earn(points=10, idempotency_key="promo"))
        self.assertEqual(PointsTransaction.objects.filter(idempotency_key="promo").count(), 2)

    def test_admin_adjustment_both_directions(self):
        services.apply(self.customer, Earn(points=100))

        up = services.apply(self.customer, AdminAdjustment(delta=25, reason="Missed promo", performed_by=self.admin))
        down = services.apply(self.customer, AdminAdjustment(delta=-60, reason="Refunded order", performed_by=self.admin))

        self.assertEqual(up.points, 125)
        self.assertEqual(down.points, 65)
        self.assertEqual(down.total_earned, 125)
        self.assertEqual(down.total_redeemed, 60)
        adjustments = PointsTransaction.objects.filter(source="admin_adjustment")
        self.assertEqual(adjustments.count(), 2)
        self.assertTrue(all(tx.created_by_id == self.admin.pk for tx in adjustments))

    def test_adjustment_cannot_go_negative(self):
        services.apply(self.customer, Earn(points=10))
        with self.assertRaises(InsufficientPointsError):
            services.apply(self.customer, AdminAdjustment(delta=-11, reason="Oops"))

    def test_adjustment_needs_reason(self):
        with self.assertRaises(LedgerError):
            services.apply(self.customer, AdminAdjustment(delta=5, reason="  "))

    def test_balance_for_user_without_account(self):
        balance = services.balance_for(self.customer)
        self.assertEqual((balance.points, balance.total_earned, balance.total_redeemed), (0, 0, 0))

    def test_points_record_clean_checks_totals(self):
        account = UserPoints(user=self.customer, points=5, total_earned=10, total_redeemed=0)
        with self.assertRaises(DjangoValidationError):
            account.clean()


class OrderPointsTests(LoyaltyTestBase):
    def setUp(self):
        super().setUp()
        self.program = LoyaltyProgram.objects.create(points_for_first_order=0)

    def _order(self, total, user=None, status=Order.COMPLETED):
        return Order.objects.create(user=user, total=Decimal(total), status=status)

    def test_points_for_order_floors(self):
        self.assertEqual(services.points_for_order(Decimal("24.89"), self.program), 24)
        self.assertEqual(services.points_for_order(Decimal("0.99"), self.program), 0)
        self.assertEqual(services.points_for_order(Decimal("-3"), self.program), 0)

    def test_bonus_multiplier_at_threshold(self):
        # floor(50 * 1.0) = 50, then floor(50 * 1.5) = 75
        self.assertEqual(services.points_for_order(Decimal("50.00"), self.program), 75)
        self.assertEqual(services.points_for_order(Decimal("49.99"), self.program), 49)

    def test_completed_order_earns_exactly_once(self):
        order = self._order("24.89", user=self.customer)

        services.award_points_for_order(order)
        services.award_points_for_order(order)

        txs = PointsTransaction.objects.filter(user=self.customer, type="earned")
        self.assertEqual(txs.count(), 1)
        self.assertEqual(txs.get().points, 24)
        self.assertEqual(txs.get().order_id, order.pk)
        self.assertEqual(self._account(self.customer).points, 24)

    def test_first_order_bonus_is_separate_entry(self):
        self.program.points_for_first_order = 50
        self.program.save()
        order = self._order("20.00", user=self.customer)

        balance = services.award_points_for_order(order)

        self.assertEqual(balance.points, 70)
        keys = set(PointsTransaction.objects.filter(user=self.customer).values_list("idempotency_key", flat=True))
        self.assertEqual(keys, {f"order:{order.pk}:earned", f"order:{order.pk}:first-order-bonus"})

    def test_no_first_order_bonus_after_earlier_orders(self):
        self.program.points_for_first_order = 50
        self.program.save()
        self._order("10.00", user=self.customer)
        second = self._order("20.00", user=self.customer)

        balance = services.award_points_for_order(second)

        self.assertEqual(balance.points, 20)

    def test_guest_orders_earn_nothing(self):
        self.assertIsNone(services.award_points_for_order(self._order("30.00")))
        self.assertFalse(PointsTransaction.objects.exists())

    def test_inactive_program_earns_nothing(self):
        self.program.is_active = False
        self.program.save()
        order = self._order("30.00", user=self.customer)
        self.assertIsNone(services.award_points_for_order(order))

    def test_disabled_program_is_still_current(self):
        self.program.is_active = False
        self.program.save()
        current = LoyaltyProgram.current()
        self.assertEqual(current.pk, self.program.pk)
        self.assertFalse(current.is_active)
        self.assertIsNone(services.award_signup_bonus(self.customer))

    def test_signup_bonus_once(self):
        services.award_signup_bonus(self.customer)
        services.award_signup_bonus(self.customer)
        self.assertEqual(self._account(self.customer).points, 100)


class RewardTests(LoyaltyTestBase):
    def setUp(self):
        super().setUp()
        self.reward = PointsReward.objects.create(
            name="$5 off",
            points_required=100,
            discount_amount=Decimal("5.00"),
            discount_type=PointsReward.FIXED,
            min_order_amount=Decimal("15.00"),
        )
        services.apply(self.customer, Earn(points=250))

    def test_redeem_reward_issues_voucher(self):
        balance = services.redeem_reward(self.customer, self.reward.pk)

        self.assertEqual(balance.points, 150)
        voucher = balance.voucher
        self.assertRegex(voucher.code, r"^SAVE5-[A-Z0-9]{6}$")
        self.assertEqual(voucher.points_spent, 100)
        self.assertEqual(voucher.status, Voucher.ACTIVE)
        self.assertEqual(voucher.points_transaction.type, "redeemed")
        self.assertGreater(voucher.expires_at, timezone.now() + timedelta(days=29))

    def test_reward_use_limit(self):
        services.redeem_reward(self.customer, self.reward.pk)
        with self.assertRaises(ValidationError):
            services.redeem_reward(self.customer, self.reward.pk)
        self.assertEqual(self._account(self.customer).points, 150)

    def test_use_limit_checked_under_ledger_lock(self):
        services.redeem_reward(self.customer, self.reward.pk)
        before = PointsTransaction.objects.count()

        with self.assertRaises(ValidationError):
            services.apply(self.customer, Redeem(points=self.reward.points_required, reward=self.reward))

        self.assertEqual(Voucher.objects.filter(user=self.customer, reward=self.reward).count(), 1)
        self.assertEqual(PointsTransaction.objects.count(), before)

    def test_inactive_reward_not_found(self):
        self.reward.is_active = False
        self.reward.save()
        with self.assertRaises(NotFoundError):
            services.redeem_reward(self.customer, self.reward.pk)

    def test_code_prefixes(self):
        self.assertTrue(vouchers.generate_code(PointsReward.PERCENTAGE, Decimal("10.00")).startswith("PCT10-"))
        self.assertTrue(vouchers.generate_code(PointsReward.DELIVERY_FEE, Decimal("3.99")).startswith("SHIP3-"))

    def test_validate_voucher_discounts(self):
        voucher = services.redeem_reward(self.customer, self.reward.pk).voucher

        quote = vouchers.validate_voucher(self.customer, voucher.code.lower(), Decimal("30.00"))
        self.assertEqual(quote.discount, Decimal("5.00"))

        with self.assertRaises(ValidationError):
            vouchers.validate_voucher(self.customer, voucher.code, Decimal("10.00"))

        with self.assertRaises(NotFoundError):
            vouchers.validate_voucher(self.staff, voucher.code, Decimal("30.00"))

    def test_percentage_discount_rounds_to_cents(self):
        voucher = Voucher(discount_type=PointsReward.PERCENTAGE, discount_amount=Decimal("15"))
        self.assertEqual(vouchers.discount_for(voucher, Decimal("23.45")), Decimal("3.52"))

    def test_validation_does_not_write_expiry(self):
        voucher = services.redeem_reward(self.customer, self.reward.pk).voucher
        Voucher.objects.filter(pk=voucher.pk).update(expires_at=timezone.now() - timedelta(minutes=1))

        with self.assertRaises(ValidationError) as ctx:
            vouchers.validate_voucher(self.customer, voucher.code, Decimal("30.00"))
        self.assertEqual(str(ctx.exception.detail), "Voucher has expired")
        voucher.refresh_from_db()
        self.assertEqual(voucher.status, Voucher.ACTIVE)
        self.assertFalse(vouchers.active_vouchers(self.customer).exists())

    def test_expire_stale_vouchers(self):
        voucher = services.redeem_reward(self.customer, self.reward.pk).voucher
        Voucher.objects.filter(pk=voucher.pk).update(expires_at=timezone.now() - timedelta(minutes=1))

        self.assertEqual(vouchers.expire_stale_vouchers(self.staff), 0)
        self.assertEqual(vouchers.expire_stale_vouchers(self.customer), 1)
        voucher.refresh_from_db()
        self.assertEqual(voucher.status, Voucher.EXPIRED)
        with self.assertRaisesMessage(ValidationError, "Voucher has expired"):
            vouchers.validate_voucher(self.customer, voucher.code, Decimal("30.00"))


class PointsApiTests(LoyaltyTestBase):
    def test_admin_can_switch_program_off(self):
        request = self.factory.patch("/api/v1/loyalty/program", {"is_active": False}, format="json")
        force_authenticate(request, user=self.admin)
        response = LoyaltyProgramView.as_view()(request)

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data["is_active"])
        self.assertEqual(LoyaltyProgram.objects.count(), 1)
        self.assertFalse(LoyaltyProgram.current().is_active)

        order = Order.objects.create(user=self.customer, total=Decimal("40.00"), status=Order.COMPLETED)
        self.assertIsNone(services.award_points_for_order(order))
        self.assertFalse(PointsTransaction.objects.exists())

    def test_points_balance_and_history(self):
        services.apply(self.customer, Earn(points=42))
        response = PointsView.as_view()(self._request("GET", "/api/v1/points"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["points"], 42)
        self.assertEqual(response.data["totalEarned"], 42)
        self.assertEqual(len(response.data["transactions"]), 1)

    def test_earn_requires_staff_role(self):
        payload = {"userId": self.customer.pk, "points": 10}
        response = EarnPointsView.as_view()(self._request("POST", "/api/v1/points/earn", payload))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["kind"], "AUTHORIZATION_ERROR")

    def test_staff_earn_and_replay(self):
        payload = {"userId": self.customer.pk, "points": 10, "idempotencyKey": "till-7"}
        view = EarnPointsView.as_view()

        first = view(self._request("POST", "/api/v1/points/earn", payload, user=self.staff))
        second = view(self._request("POST", "/api/v1/points/earn", payload, user=self.staff))

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 200)
        self.assertTrue(second.data["replayed"])
        self.assertEqual(self._account(self.customer).points, 10)

    def test_earn_rejects_points_over_limit(self):
        payload = {"userId": self.customer.pk, "points": 10_001}
        response = EarnPointsView.as_view()(self._request("POST", "/api/v1/points/earn", payload, user=self.staff))
        self.assertEqual(response.status_code, 400)
        self.assertIn("points", response.data["details"])

    def test_redeem_insufficient_message(self):
        services.apply(self.customer, Earn(points=5))
        response = RedeemPointsView.as_view()(
            self._request("POST", "/api/v1/points/redeem", {"points": 8})
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["detail"], "Insufficient points. You have 5 points but need 8 points.")
        self.assertEqual(response.data["details"], {"available": 5, "requested": 8})

    def test_adjust_is_admin_only(self):
        payload = {"userId": self.customer.pk, "delta": 15, "reason": "Apology"}
        view = AdjustPointsView.as_view()

        denied = view(self._request("POST", "/api/v1/points/adjust", payload, user=self.staff))
        allowed = view(self._request("POST", "/api/v1/points/adjust", payload, user=self.admin))

        self.assertEqual(denied.status_code, 403)
        self.assertEqual(allowed.status_code, 200)
        self.assertEqual(allowed.data["points"], 15)

    def test_reward_redeem_endpoint(self):
        reward = PointsReward.objects.create(
            name="Free delivery", points_required=50, discount_amount=Decimal("3.99"),
            discount_type=PointsReward.DELIVERY_FEE,
        )
        services.apply(self.customer, Earn(points=60))

        response = RewardRedeemView.as_view()(
            self._request("POST", f"/api/v1/rewards/{reward.pk}/redeem"), reward_id=reward.pk
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["points"], 10)
        self.assertTrue(re.match(r"^SHIP3-", response.data["voucher"]["code"]))

    def test_voucher_validate_endpoint(self):
        reward = PointsReward.objects.create(
            name="10% off", points_required=50, discount_amount=Decimal("10"),
            discount_type=PointsReward.PERCENTAGE,
        )
        services.apply(self.customer, Earn(points=60))
        voucher = services.redeem_reward(self.customer, reward.pk).voucher

        response = VoucherValidateView.as_view()(
            self._request("POST", "/api/v1/vouchers/validate", {"code": voucher.code, "orderAmount": "40.00"})
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["discount"], "4.00")
        self.assertFalse(response.data["appliesToDeliveryFee"])

    def test_validate_endpoint_flags_expired_voucher(self):
        reward = PointsReward.objects.create(name="$3 off", points_required=50, discount_amount=Decimal("3.00"))
        services.apply(self.customer, Earn(points=60))
        voucher = services.redeem_reward(self.customer, reward.pk).voucher
        Voucher.objects.filter(pk=voucher.pk).update(expires_at=timezone.now() - timedelta(days=1))

        response = VoucherValidateView.as_view()(
            self._request("POST", "/api/v1/vouchers/validate", {"code": voucher.code, "orderAmount": "40.00"})
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["detail"], "Voucher has expired")
        voucher.refresh_from_db()
        self.assertEqual(voucher.status, Voucher.EXPIRED)
