"""
Tests for order confirmation texts.
"""
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from notifications.models import SmsLog, SmsPreference
from notifications.services import build_confirmation_message, normalize_phone, send_order_confirmation
from notifications.tasks import send_order_confirmation_task
from orders.models import Order

TWILIO = dict(
    SMS_ENABLED=True,
    TWILIO_ACCOUNT_SID="AC123",
    TWILIO_AUTH_TOKEN="token",
    TWILIO_PHONE_NUMBER="+19085550000",
    STORE_NAME="Favilla's Pizza",
    ORDER_TRACKING_URL="favillaspizzeria.com/orders",
)


def _twilio_response(status_code=201, sid="SM1"):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = {"sid": sid}
    response.text = "error" if status_code >= 400 else ""
    return response


class NormalizePhoneTests(TestCase):
    def test_us_formats(self):
        self.assertEqual(normalize_phone("(908) 555-0101"), "+19085550101")
        self.assertEqual(normalize_phone("1-908-555-0101"), "+19085550101")
        self.assertEqual(normalize_phone("+44 20 7946 0958"), "+442079460958")

    def test_unusable(self):
        for raw in ("", None, "555-0101", "12345678901234567"):
            with self.subTest(raw=raw):
                self.assertIsNone(normalize_phone(raw))


@override_settings(**TWILIO)
class ConfirmationTests(TestCase):
    def setUp(self):
        self.order = Order.objects.create(
            customer_name="Gina", phone="908-555-0101", total=Decimal("26.62"),
        )

    def test_message_text(self):
        message = build_confirmation_message(self.order)
        self.assertEqual(
            message,
            f"Favilla's Pizza: Order #{self.order.pk} confirmed! Total: $26.62 (pickup). "
            "Track your order at favillaspizzeria.com/orders",
        )
        self.assertLessEqual(len(message), 160)

    def test_scheduled_message_mentions_time(self):
        self.order.fulfillment_time = Order.SCHEDULED
        self.order.scheduled_time = timezone.make_aware(datetime(2026, 3, 7, 18, 30))
        self.assertIn("Scheduled for Mar 7 6:30 PM.", build_confirmation_message(self.order))

    @patch("notifications.services.requests.post")
    def test_sent(self, post):
        post.return_value = _twilio_response(sid="SM42")

        log = send_order_confirmation(self.order)

        self.assertEqual(log.status, SmsLog.SENT)
        self.assertEqual(log.provider_message_id, "SM42")
        self.assertEqual(log.phone, "+19085550101")
        args, kwargs = post.call_args
        self.assertEqual(args[0], "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json")
        self.assertEqual(kwargs["data"]["To"], "+19085550101")
        self.assertEqual(kwargs["auth"], ("AC123", "token"))

    @patch("notifications.services.requests.post")
    def test_provider_error_logged_as_failed(self, post):
        post.return_value = _twilio_response(status_code=400)
        log = send_order_confirmation(self.order)
        self.assertEqual(log.status, SmsLog.FAILED)
        self.assertIn("400", log.error_message)

    @patch("notifications.services.requests.post")
    def test_non_json_success_reply_logged_as_failed(self, post):
        response = _twilio_response()
        response.json.side_effect = ValueError("Expecting value")
        response.text = "<html>Gateway</html>"
        post.return_value = response

        log = send_order_confirmation(self.order)

        self.assertEqual(log.status, SmsLog.FAILED)
        self.assertIn("non-JSON", log.error_message)

    @patch("notifications.services.requests.post")
    def test_network_error_logged_as_failed(self, post):
        post.side_effect = requests.exceptions.Timeout("timed out")
        log = send_order_confirmation(self.order)
        self.assertEqual(log.status, SmsLog.FAILED)

    @patch("notifications.services.requests.post")
    def test_skips(self, post):
        with self.subTest("disabled"), override_settings(SMS_ENABLED=False):
            self.assertEqual(send_order_confirmation(self.order).status, SmsLog.SKIPPED)
        with self.subTest("not configured"), override_settings(TWILIO_AUTH_TOKEN=""):
            self.assertEqual(send_order_confirmation(self.order).status, SmsLog.SKIPPED)

        Order.objects.filter(pk=self.order.pk).update(phone="12")
        self.order.refresh_from_db()
        log = send_order_confirmation(self.order)
        self.assertEqual(log.error_message, "Invalid phone number")
        post.assert_not_called()

    @patch("notifications.services.requests.post")
    def test_opted_out_customer_not_texted(self, post):
        SmsPreference.objects.create(phone="+19085550101", order_updates_enabled=False)
        log = send_order_confirmation(self.order)
        self.assertEqual(log.status, SmsLog.SKIPPED)
        post.assert_not_called()

    @patch("notifications.services.requests.post")
    def test_task(self, post):
        post.return_value = _twilio_response()
        self.assertEqual(send_order_confirmation_task(self.order.pk), SmsLog.SENT)
        self.assertIsNone(send_order_confirmation_task(999999))


@override_settings(**TWILIO)
class SmsApiTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.customer = User.objects.create_user(username="customer", password="test-pass", phone="9085550101")
        self.staff = User.objects.create_user(username="cashier", password="test-pass", role="employee")
        self.client = APIClient()

    def test_preferences_round_trip(self):
        self.client.force_authenticate(self.customer)

        response = self.client.get("/api/v1/sms/preferences")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["order_updates_enabled"])
        self.assertEqual(response.data["phone"], "+19085550101")

        response = self.client.patch("/api/v1/sms/preferences", {"order_updates_enabled": False}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(SmsPreference.objects.get(user=self.customer).order_updates_enabled)

    @patch("notifications.services.requests.post")
    def test_resend_confirmation_is_staff_only(self, post):
        post.return_value = _twilio_response(sid="SM7")
        order = Order.objects.create(user=self.customer, phone="9085550101", total=Decimal("12.00"))

        self.client.force_authenticate(self.customer)
        denied = self.client.post("/api/v1/sms/order-confirmation", {"orderId": order.pk}, format="json")
        self.client.force_authenticate(self.staff)
        sent = self.client.post("/api/v1/sms/order-confirmation", {"orderId": order.pk}, format="json")

        self.assertEqual(denied.status_code, 403)
        self.assertEqual(sent.status_code, 200)
        self.assertEqual(sent.data, {"status": "sent", "messageId": "SM7", "error": None})
