"""
Tests for receipt layout and the Epson ePOS printer client.
"""
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from common.errors import NotFoundError, ValidationError
from orders.models import Order, OrderItem
from printing import services
from printing.models import PrinterConfig


def _printer_response(text='<response success="true" code=""/>', status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


@override_settings(STORE_NAME="Favilla's Pizza", STORE_PHONE="(908) 555-0100")
class ReceiptTests(TestCase):
    def setUp(self):
        self.order = Order.objects.create(
            order_type=Order.DELIVERY,
            customer_name="Gina Russo",
            phone="908-555-0101",
            address="12 Elm St, Westfield, NJ",
            subtotal=Decimal("24.89"),
            discount=Decimal("5.00"),
            delivery_fee=Decimal("3.99"),
            tax=Decimal("1.73"),
            total=Decimal("25.61"),
            special_instructions="Ring the bell twice",
        )
        OrderItem.objects.create(
            order=self.order, name="Large Margherita", unit_price=Decimal("14.99"),
            options=[{"groupName": "Crust", "itemName": "Thin"}], special_instructions="well done",
        )
        OrderItem.objects.create(order=self.order, name="Garlic Knots", unit_price=Decimal("4.95"), quantity=2)

    def test_receipt_lines(self):
        receipt = services.format_receipt(self.order)
        lines = receipt.splitlines()

        self.assertEqual(lines[0].strip(), "Favilla's Pizza")
        self.assertTrue(all(len(line) <= services.RECEIPT_WIDTH for line in lines))
        self.assertIn(f"Order #{self.order.pk}", receipt)
        self.assertIn("DELIVERY", receipt)
        self.assertIn("   - Crust: Thin", lines)
        self.assertIn("   * well done", lines)
        self.assertIn(services._line("2x Garlic Knots", "$9.90"), lines)
        self.assertIn(services._line("Discount", "-$5.00"), lines)
        self.assertIn(services._line("TOTAL", "$25.61"), lines)
        self.assertIn("Ring the bell twice", lines)

    def test_long_item_names_are_truncated(self):
        line = services._line("x" * 60, "$10.00")
        self.assertEqual(len(line), services.RECEIPT_WIDTH)
        self.assertTrue(line.endswith(" $10.00"))

    def test_epos_envelope(self):
        xml = services.build_epos_xml("Fish & Chips <2>\nTotal")
        self.assertTrue(xml.startswith('<?xml version="1.0" encoding="utf-8"?>'))
        self.assertIn(services.EPOS_NAMESPACE, xml)
        self.assertIn("Fish &amp; Chips &lt;2&gt;&#10;Total", xml)
        self.assertIn('<cut type="feed"/>', xml)
        self.assertNotIn("<cut", services.build_epos_xml("x", cut=False))


class PrinterClientTests(TestCase):
    def setUp(self):
        self.printer = PrinterConfig.objects.create(name="Kitchen", ip_address="192.168.1.50", port=8008)
        self.order = Order.objects.create(total=Decimal("10.00"))

    def test_address_validation(self):
        services.validate_printer_address("10.0.0.7", 80)
        services.validate_printer_address("localhost", 9100)
        for ip, port in (("192.168.1.300", 80), ("printer.local", 80), ("10.0.0.7", 0), ("10.0.0.7", 70000)):
            with self.subTest(ip=ip, port=port):
                with self.assertRaises(ValidationError):
                    services.validate_printer_address(ip, port)

    def test_printer_url(self):
        self.assertEqual(
            services.printer_url(self.printer),
            "http://192.168.1.50:8008/cgi-bin/epos/service.cgi?devid=local_printer&timeout=60000",
        )

    @patch("printing.services.requests.post")
    def test_print_success(self, post):
        post.return_value = _printer_response()

        result = services.print_order(self.order)

        self.assertTrue(result.success)
        self.assertEqual(result.printer, "Kitchen")
        _, kwargs = post.call_args
        self.assertEqual(kwargs["headers"]["Content-Type"], "text/xml; charset=utf-8")
        self.assertIn(b"epos-print", kwargs["data"])

    @patch("printing.services.requests.post")
    def test_printer_reports_failure(self, post):
        post.return_value = _printer_response('<response success="false" code="EPTR_COVER_OPEN"/>')
        result = services.print_order(self.order)
        self.assertFalse(result.success)
        self.assertEqual(result.message, "Printer error EPTR_COVER_OPEN")

    @patch("printing.services.requests.post")
    def test_unreachable_printer(self, post):
        post.side_effect = requests.exceptions.ConnectTimeout("no route")
        result = services.print_order(self.order)
        self.assertFalse(result.success)
        self.assertIn("unreachable", result.message)

    def test_no_active_printer(self):
        PrinterConfig.objects.update(is_active=False)
        with self.assertRaises(NotFoundError):
            services.select_printer()

    def test_primary_printer_preferred(self):
        front = PrinterConfig.objects.create(name="Front", ip_address="192.168.1.51")
        services.set_primary(front.pk)
        self.assertEqual(services.select_printer(), front)

        services.set_primary(self.printer.pk)
        front.refresh_from_db()
        self.assertFalse(front.is_primary)
        self.assertEqual(PrinterConfig.objects.filter(is_primary=True).count(), 1)


class PrinterApiTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.admin = User.objects.create_user(username="owner", password="test-pass", role="admin")
        self.staff = User.objects.create_user(username="cashier", password="test-pass", role="employee")
        self.client = APIClient()

    def test_admin_manages_printers(self):
        self.client.force_authenticate(self.admin)

        bad = self.client.post("/api/v1/printers", {"name": "Bar", "ip_address": "999.1.1.1"}, format="json")
        created = self.client.post("/api/v1/printers", {"name": "Bar", "ip_address": "192.168.1.60"}, format="json")
        primary = self.client.post(f"/api/v1/printers/{created.data['id']}/set-primary")

        self.assertEqual(bad.status_code, 400)
        self.assertEqual(created.status_code, 201)
        self.assertEqual(primary.status_code, 200)
        self.assertTrue(primary.data["is_primary"])

    def test_staff_cannot_manage_printers(self):
        self.client.force_authenticate(self.staff)
        self.assertEqual(self.client.get("/api/v1/printers").status_code, 403)

    @patch("printing.services.requests.post")
    def test_print_order_endpoint(self, post):
        post.return_value = _printer_response(status_code=503)
        PrinterConfig.objects.create(name="Kitchen", ip_address="192.168.1.50")
        order = Order.objects.create(total=Decimal("10.00"))
        self.client.force_authenticate(self.staff)

        response = self.client.post("/api/v1/printer/print-order", {"orderId": order.pk}, format="json")

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data["message"], "HTTP 503")
