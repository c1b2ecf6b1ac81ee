"""
Tests for order creation, status transitions and the orders API.
"""
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.errors import ValidationError
from loyalty import services as loyalty_services
from loyalty.models import LoyaltyProgram, PointsReward, PointsTransaction, Voucher
from orders.models import Order, OrderItem
from orders.services import InvalidStatusTransition, create_order, transition_order

ITEMS = [
    {"name": "Large Margherita", "unit_price": "14.99", "quantity": 1,
     "options": [{"groupName": "Crust", "itemName": "Thin"}]},
    {"name": "Garlic Knots", "unit_price": "4.95", "quantity": 2},
]

ADDRESS = {
    "street": "12 Elm St",
    "city": "Westfield",
    "state": "NJ",
    "zipCode": "07090",
    "latitude": 40.65,
    "longitude": -74.34,
}


class OrderTestBase(TestCase):
    def setUp(self):
        User = get_user_model()
        self.customer = User.objects.create_user(
            username="customer", email="customer@example.com", password="test-pass",
            first_name="Gina", last_name="Russo", phone="908-555-0101",
        )
        self.kitchen = User.objects.create_user(
            username="kitchen", email="kitchen@example.com", password="test-pass", role="kitchen"
        )
        LoyaltyProgram.objects.create(points_for_first_order=0)


class CreateOrderTests(OrderTestBase):
    def test_pickup_order_totals_and_items(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            order = create_order(user=self.customer, items=ITEMS, tax=Decimal("1.73"))

        self.assertEqual(order.subtotal, Decimal("24.89"))
        self.assertEqual(order.total, Decimal("26.62"))
        self.assertEqual(order.customer_name, "Gina Russo")
        self.assertEqual(order.phone, "908-555-0101")
        self.assertEqual(OrderItem.objects.filter(order=order).count(), 2)
        # confirmation text only; pickup orders are never dispatched
        self.assertEqual(len(callbacks), 1)

    def test_paid_delivery_queues_dispatch(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            create_order(
                user=self.customer,
                items=ITEMS,
                order_type=Order.DELIVERY,
                payment_status=Order.PAYMENT_COMPLETED,
                delivery_fee=Decimal("3.99"),
                address="12 Elm St, Westfield, NJ 07090",
                address_data=ADDRESS,
            )
        self.assertEqual(len(callbacks), 2)

    def test_confirmation_task_runs_after_commit(self):
        with patch("notifications.tasks.send_order_confirmation_task.delay") as delay:
            with self.captureOnCommitCallbacks(execute=True):
                order = create_order(items=ITEMS, customer_name="Walk In", phone="9085550199")
        delay.assert_called_once_with(order.pk)

    def test_delivery_requires_address(self):
        with self.assertRaises(ValidationError):
            create_order(user=self.customer, items=ITEMS, order_type=Order.DELIVERY)
        self.assertFalse(Order.objects.exists())

    def test_empty_order_rejected(self):
        with self.assertRaises(ValidationError):
            create_order(user=self.customer, items=[])

    def test_fixed_voucher_applied_and_used(self):
        reward = PointsReward.objects.create(
            name="$5 off", points_required=100, discount_amount=Decimal("5.00"),
            min_order_amount=Decimal("15.00"),
        )
        loyalty_services.apply(self.customer, loyalty_services.Earn(points=100))
        voucher = loyalty_services.redeem_reward(self.customer, reward.pk).voucher

        order = create_order(user=self.customer, items=ITEMS, voucher_code=voucher.code)

        self.assertEqual(order.discount, Decimal("5.00"))
        self.assertEqual(order.total, Decimal("19.89"))
        voucher.refresh_from_db()
        self.assertEqual(voucher.status, Voucher.USED)
        self.assertEqual(voucher.order_id, order.pk)

        with self.assertRaises(ValidationError):
            create_order(user=self.customer, items=ITEMS, voucher_code=voucher.code)

    def test_delivery_fee_voucher_capped_at_fee(self):
        reward = PointsReward.objects.create(
            name="Free delivery", points_required=50, discount_amount=Decimal("5.00"),
            discount_type=PointsReward.DELIVERY_FEE,
        )
        loyalty_services.apply(self.customer, loyalty_services.Earn(points=50))
        voucher = loyalty_services.redeem_reward(self.customer, reward.pk).voucher

        order = create_order(
            user=self.customer, items=ITEMS, order_type=Order.DELIVERY,
            delivery_fee=Decimal("3.99"), address_data=ADDRESS, voucher_code=voucher.code,
        )

        self.assertEqual(order.discount, Decimal("3.99"))
        self.assertEqual(order.total, Decimal("24.89"))

    def test_guest_cannot_use_voucher(self):
        with self.assertRaises(ValidationError):
            create_order(items=ITEMS, voucher_code="SAVE5-ABCDEF")


class TransitionTests(OrderTestBase):
    def setUp(self):
        super().setUp()
        self.order = Order.objects.create(user=self.customer, total=Decimal("24.89"), subtotal=Decimal("24.89"))

    def test_happy_path_awards_points_once(self):
        for status in (Order.COOKING, Order.READY, Order.COMPLETED, Order.PICKED_UP):
            transition_order(self.order.pk, status, actor=self.kitchen)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.PICKED_UP)
        self.assertIsNotNone(self.order.completed_at)
        earned = PointsTransaction.objects.filter(user=self.customer, type="earned")
        self.assertEqual(earned.count(), 1)
        self.assertEqual(earned.get().points, 24)

    def test_illegal_transition(self):
        with self.assertRaises(InvalidStatusTransition) as ctx:
            transition_order(self.order.pk, Order.DELIVERED)
        self.assertEqual(ctx.exception.details["current"], Order.PENDING)
        self.assertEqual(ctx.exception.details["allowed"], [Order.CANCELLED, Order.COOKING])

    def test_cancelled_is_final(self):
        transition_order(self.order.pk, Order.CANCELLED)
        with self.assertRaises(InvalidStatusTransition):
            transition_order(self.order.pk, Order.COOKING)
        self.assertFalse(PointsTransaction.objects.exists())

    def test_paid_delivery_dispatched_when_cooking(self):
        Order.objects.filter(pk=self.order.pk).update(
            order_type=Order.DELIVERY, payment_status=Order.PAYMENT_COMPLETED
        )
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            transition_order(self.order.pk, Order.COOKING)
        self.assertEqual(len(callbacks), 1)


class OrderApiTests(OrderTestBase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()

    def test_guest_checkout(self):
        response = self.client.post(
            "/api/v1/orders",
            {"items": ITEMS, "customer_name": "Guest", "phone": "9085550123", "tax": "1.73"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.data["user"])
        self.assertEqual(response.data["total"], "26.62")
        self.assertEqual(len(response.data["items"]), 2)

    def test_scheduled_order_requires_time(self):
        response = self.client.post(
            "/api/v1/orders", {"items": ITEMS, "fulfillment_time": "scheduled"}, format="json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("scheduled_time", response.data["details"])

        later = (timezone.now() + timedelta(hours=2)).isoformat()
        response = self.client.post(
            "/api/v1/orders",
            {"items": ITEMS, "fulfillment_time": "scheduled", "scheduled_time": later},
            format="json",
        )
        self.assertEqual(response.status_code, 201)

    def test_customers_only_see_their_orders(self):
        mine = Order.objects.create(user=self.customer, total=Decimal("10.00"))
        Order.objects.create(user=self.kitchen, total=Decimal("12.00"))

        self.client.force_authenticate(self.customer)
        response = self.client.get("/api/v1/orders")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([o["id"] for o in response.data], [mine.pk])

    def test_staff_sees_all_and_filters_by_status(self):
        Order.objects.create(user=self.customer, total=Decimal("10.00"))
        Order.objects.create(user=self.customer, total=Decimal("12.00"), status=Order.COOKING)

        self.client.force_authenticate(self.kitchen)
        response = self.client.get("/api/v1/orders", {"status": "cooking"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)

    def test_status_update_is_staff_only(self):
        order = Order.objects.create(user=self.customer, total=Decimal("10.00"))

        self.client.force_authenticate(self.customer)
        denied = self.client.patch(f"/api/v1/orders/{order.pk}/status", {"status": "cooking"}, format="json")
        self.client.force_authenticate(self.kitchen)
        allowed = self.client.patch(f"/api/v1/orders/{order.pk}/status", {"status": "cooking"}, format="json")
        bad = self.client.patch(f"/api/v1/orders/{order.pk}/status", {"status": "pending"}, format="json")
        missing = self.client.patch("/api/v1/orders/999999/status", {"status": "cooking"}, format="json")

        self.assertEqual(denied.status_code, 403)
        self.assertEqual(allowed.status_code, 200)
        self.assertEqual(allowed.data["status"], "cooking")
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(missing.status_code, 404)

    def test_detail_hidden_from_other_customers(self):
        order = Order.objects.create(user=self.kitchen, total=Decimal("10.00"))
        self.client.force_authenticate(self.customer)
        response = self.client.get(f"/api/v1/orders/{order.pk}")
        self.assertEqual(response.status_code, 404)
