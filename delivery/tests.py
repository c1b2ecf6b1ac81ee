"""
Tests for delivery fee lookup and Shipday dispatch.
"""
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from delivery import services
from delivery.models import DeliveryBlackout, DeliveryZone, StoreSettings
from delivery.shipday import build_payload, dispatch_order
from delivery.tasks import dispatch_order_task
from orders.models import Order, OrderItem

STORE_LAT = Decimal("40.659000")
STORE_LNG = Decimal("-74.347400")


def _at(miles_north):
    """Coordinates roughly ``miles_north`` miles due north of the store."""
    return float(STORE_LAT) + miles_north / 69.0976, float(STORE_LNG)


class DeliveryTestBase(TestCase):
    def setUp(self):
        self.store = StoreSettings.objects.create(
            store_name="Favilla's Pizza",
            address="100 Central Ave",
            city="Westfield",
            state="NJ",
            zip_code="07090",
            phone="(908) 555-0100",
            latitude=STORE_LAT,
            longitude=STORE_LNG,
        )
        self.near = DeliveryZone.objects.create(
            zone_name="Zone 1", min_distance_miles=Decimal("0"), max_distance_miles=Decimal("3"),
            delivery_fee=Decimal("2.99"), estimated_time_minutes=35,
        )
        self.far = DeliveryZone.objects.create(
            zone_name="Zone 2", min_distance_miles=Decimal("3"), max_distance_miles=Decimal("6"),
            delivery_fee=Decimal("4.99"), estimated_time_minutes=45,
        )


class HaversineTests(TestCase):
    def test_same_point_is_zero(self):
        self.assertEqual(services.haversine_miles(40.0, -74.0, 40.0, -74.0), 0)

    def test_known_distance(self):
        # New York to Los Angeles
        miles = services.haversine_miles(40.7128, -74.0060, 34.0522, -118.2437)
        self.assertAlmostEqual(miles, 2445, delta=10)

    def test_rounded_to_two_places(self):
        lat, lng = _at(3.4567)
        miles = services.haversine_miles(STORE_LAT, STORE_LNG, lat, lng)
        self.assertEqual(miles, round(miles, 2))
        self.assertAlmostEqual(miles, 3.46, delta=0.01)


class QuoteTests(DeliveryTestBase):
    def test_band_match(self):
        quote = services.quote_delivery(*_at(1.5))
        self.assertTrue(quote.can_deliver)
        self.assertEqual(quote.zone_name, "Zone 1")
        self.assertEqual(quote.delivery_fee, Decimal("2.99"))
        self.assertEqual(quote.estimated_time, 35)

    def test_band_lower_bound_inclusive(self):
        self.assertEqual(services.zone_for_distance(3.0), self.far)
        self.assertEqual(services.zone_for_distance(2.99), self.near)

    def test_out_of_band_uses_widest_zone(self):
        quote = services.quote_delivery(*_at(8))
        self.assertTrue(quote.can_deliver)
        self.assertEqual(quote.zone_name, "Zone 2")

    def test_beyond_max_distance(self):
        quote = services.quote_delivery(*_at(12))
        self.assertFalse(quote.can_deliver)
        self.assertEqual(quote.delivery_fee, Decimal("0"))
        self.assertEqual(quote.estimated_time, 0)
        self.assertIn("within 10 miles", quote.message)

    def test_blackout_zip(self):
        DeliveryBlackout.objects.create(
            area_name="Downtown", zip_codes=["07091", "07092-1234"], reason="Road closure"
        )
        quote = services.quote_delivery(*_at(1), zip_code="07092")
        self.assertFalse(quote.can_deliver)
        self.assertEqual(quote.message, "Sorry, we don't currently deliver to Downtown (Road closure)")

        other = services.quote_delivery(*_at(1), zip_code="07090")
        self.assertTrue(other.can_deliver)

    def test_inactive_blackout_ignored(self):
        DeliveryBlackout.objects.create(area_name="Downtown", zip_codes=["07091"], is_active=False)
        self.assertTrue(services.quote_delivery(*_at(1), zip_code="07091").can_deliver)

    def test_no_zones_configured(self):
        DeliveryZone.objects.update(is_active=False)
        with self.assertRaises(services.NoDeliveryZonesError) as ctx:
            services.quote_delivery(*_at(1))
        self.assertEqual(ctx.exception.status_code, 500)

    def test_store_without_coordinates(self):
        StoreSettings.objects.update(latitude=None)
        with self.assertRaises(services.StoreNotConfiguredError):
            services.quote_delivery(*_at(1))

    def test_missing_coordinates(self):
        with self.assertRaises(services.LocationRequiredError):
            services.quote_delivery(None, -74.3)


class DeliveryApiTests(DeliveryTestBase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        User = get_user_model()
        self.admin = User.objects.create_user(username="owner", password="test-pass", role="admin")
        self.customer = User.objects.create_user(username="customer", password="test-pass")

    def test_fee_lookup_is_public(self):
        lat, lng = _at(4)
        response = self.client.post(
            "/api/v1/delivery/fee", {"latitude": lat, "longitude": lng, "zipCode": "07090"}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["canDeliver"])
        self.assertEqual(response.data["deliveryFee"], 4.99)
        self.assertEqual(response.data["zoneName"], "Zone 2")

    def test_fee_without_coordinates(self):
        response = self.client.post("/api/v1/delivery/fee", {"address": "12 Elm St"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["detail"], "Unable to determine delivery location")

    def test_zone_management_is_admin_only(self):
        self.client.force_authenticate(self.customer)
        self.assertEqual(self.client.get("/api/v1/delivery/zones").status_code, 403)

        self.client.force_authenticate(self.admin)
        listed = self.client.get("/api/v1/delivery/zones")
        self.assertEqual([z["zone_name"] for z in listed.data], ["Zone 1", "Zone 2"])

        bad = self.client.post(
            "/api/v1/delivery/zones",
            {"zone_name": "Empty", "min_distance_miles": "5", "max_distance_miles": "5", "delivery_fee": "1.00"},
            format="json",
        )
        self.assertEqual(bad.status_code, 400)

    def test_store_settings_readable_by_anyone(self):
        response = self.client.get("/api/v1/delivery/settings")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["store_name"], "Favilla's Pizza")


@override_settings(SHIPDAY_API_KEY="ship-key", SHIPDAY_API_URL="https://api.shipday.test/orders")
class ShipdayTests(DeliveryTestBase):
    def setUp(self):
        super().setUp()
        self.order = Order.objects.create(
            order_type=Order.DELIVERY,
            payment_status=Order.PAYMENT_COMPLETED,
            customer_name="Gina Russo",
            phone="(908) 555-0101",
            email="gina@example.com",
            address_data={"street": "12 Elm St", "city": "Westfield", "state": "NJ",
                          "zipCode": "07090", "latitude": 40.66, "longitude": -74.34},
            subtotal=Decimal("24.89"),
            tax=Decimal("1.73"),
            delivery_fee=Decimal("3.99"),
            tip=Decimal("4.00"),
            total=Decimal("34.61"),
        )
        OrderItem.objects.create(
            order=self.order, name="Large Pie", unit_price=Decimal("14.99"),
            options=[{"groupName": "Crust", "itemName": "Thin"}],
        )

    def _response(self, status_code=200, body=None):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = body or {}
        response.text = str(body)
        return response

    def test_payload(self):
        payload = build_payload(self.order, self.store)
        self.assertEqual(payload["orderNumber"], f"FAV-{self.order.pk}")
        self.assertEqual(payload["customerAddress"], "12 Elm St, Westfield, NJ 07090")
        self.assertEqual(payload["customerPhoneNumber"], "9085550101")
        self.assertEqual(payload["restaurantPhoneNumber"], "9085550100")
        self.assertEqual(payload["orderItem"][0]["name"], "Large Pie (Thin)")
        self.assertEqual(payload["totalOrderCost"], 34.61)
        self.assertEqual(payload["pickupLatitude"], 40.659)

    @patch("delivery.shipday.requests.post")
    def test_successful_dispatch_records_id(self, post):
        post.return_value = self._response(200, {"orderId": 98765})

        result = dispatch_order(self.order)

        self.assertTrue(result.success)
        self.assertEqual(result.shipday_order_id, "98765")
        _, kwargs = post.call_args
        self.assertEqual(kwargs["headers"]["Authorization"], "Basic ship-key")
        self.order.refresh_from_db()
        self.assertEqual(self.order.shipday_order_id, "98765")
        self.assertEqual(self.order.shipday_status, "pending")

        again = dispatch_order(self.order)
        self.assertTrue(again.skipped)
        self.assertEqual(post.call_count, 1)

    @patch("delivery.shipday.requests.post")
    def test_http_error_is_failure(self, post):
        post.return_value = self._response(500, {"error": "down"})
        result = dispatch_order(self.order)
        self.assertFalse(result.success)
        self.assertFalse(result.skipped)
        self.order.refresh_from_db()
        self.assertEqual(self.order.shipday_order_id, "")

    @patch("delivery.shipday.requests.post")
    def test_network_error_is_failure(self, post):
        post.side_effect = requests.exceptions.ConnectionError("refused")
        result = dispatch_order(self.order)
        self.assertFalse(result.success)
        self.assertIn("refused", result.message)

    @patch("delivery.shipday.requests.post")
    def test_unpaid_and_pickup_orders_skipped(self, post):
        Order.objects.filter(pk=self.order.pk).update(payment_status=Order.PAYMENT_PENDING)
        self.order.refresh_from_db()
        self.assertTrue(dispatch_order(self.order).skipped)

        pickup = Order.objects.create(order_type=Order.PICKUP, payment_status=Order.PAYMENT_COMPLETED)
        self.assertTrue(dispatch_order(pickup).skipped)
        post.assert_not_called()

    @override_settings(SHIPDAY_API_KEY="")
    def test_not_configured(self):
        result = dispatch_order(self.order)
        self.assertTrue(result.skipped)
        self.assertEqual(result.message, "Shipday is not configured")

    @patch("delivery.shipday.requests.post")
    def test_task_dispatches_existing_order(self, post):
        post.return_value = self._response(200, {"orderId": 1})
        self.assertEqual(dispatch_order_task(self.order.pk)["shipdayOrderId"], "1")
        self.assertIsNone(dispatch_order_task(999999))

    @patch("delivery.shipday.requests.post")
    def test_dispatch_endpoint(self, post):
        post.return_value = self._response(502, {"error": "bad gateway"})
        staff = get_user_model().objects.create_user(username="cashier", password="test-pass", role="employee")
        client = APIClient()
        client.force_authenticate(staff)

        response = client.post("/api/v1/delivery/shipday/dispatch", {"orderId": self.order.pk}, format="json")

        self.assertEqual(response.status_code, 502)
        self.assertFalse(response.data["success"])
