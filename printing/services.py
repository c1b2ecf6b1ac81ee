# printing/services.py
"""
Kitchen/customer receipts for Epson network printers.

Receipts are laid out as fixed-width text and wrapped in an ePOS-Print SOAP
envelope, which the printer accepts over plain HTTP.
"""
import ipaddress
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from xml.sax.saxutils import escape

import requests
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from common.errors import NotFoundError, ValidationError
from orders.models import Order
from .models import PrinterConfig

logger = logging.getLogger(__name__)

RECEIPT_WIDTH = 42
EPOS_NAMESPACE = "http://www.epson-pos.com/schemas/2011/03/epos-print"
SOAP_NAMESPACE = "http://schemas.xmlsoap.org/soap/envelope/"
EPOS_PATH = "/cgi-bin/epos/service.cgi?devid=local_printer&timeout=60000"


@dataclass(frozen=True)
class PrintResult:
    success: bool
    printer: str
    message: str = ""

    def as_dict(self) -> dict:
        return {"success": self.success, "printer": self.printer, "message": self.message}


def _line(left: str, right: str = "") -> str:
    space = RECEIPT_WIDTH - len(left) - len(right)
    if space < 1:
        left = left[: RECEIPT_WIDTH - len(right) - 1]
        space = 1
    return f"{left}{' ' * space}{right}"


def _money(value) -> str:
    return f"${Decimal(value or 0):.2f}"


def _center(text: str) -> str:
    return text.center(RECEIPT_WIDTH).rstrip()


def format_receipt(order: Order) -> str:
    rule = "-" * RECEIPT_WIDTH
    created = timezone.localtime(order.created_at) if order.created_at else timezone.localtime()
    lines = [
        _center(settings.STORE_NAME),
    ]
    if settings.STORE_PHONE:
        lines.append(_center(settings.STORE_PHONE))
    lines += [
        rule,
        _line(f"Order #{order.pk}", order.get_order_type_display().upper()),
        created.strftime("%m/%d/%Y %I:%M %p"),
    ]
    if order.fulfillment_time == Order.SCHEDULED and order.scheduled_time:
        lines.append("SCHEDULED: " + timezone.localtime(order.scheduled_time).strftime("%m/%d %I:%M %p"))
    if order.customer_name:
        lines.append(f"Customer: {order.customer_name}")
    if order.phone:
        lines.append(f"Phone: {order.phone}")
    if order.is_delivery and order.address:
        lines.append(f"Address: {order.address}")
    lines.append(rule)

    for item in order.items.all():
        lines.append(_line(f"{item.quantity}x {item.name}", _money(item.line_total)))
        for opt in item.options or []:
            if not isinstance(opt, dict):
                continue
            label = opt.get("itemName") or opt.get("name")
            if not label:
                continue
            group = opt.get("groupName")
            lines.append(f"   - {group}: {label}" if group else f"   - {label}")
        if item.special_instructions:
            lines.append(f"   * {item.special_instructions}")

    lines += [rule, _line("Subtotal", _money(order.subtotal))]
    if order.discount:
        lines.append(_line("Discount", f"-{_money(order.discount)}"))
    if order.delivery_fee:
        lines.append(_line("Delivery Fee", _money(order.delivery_fee)))
    if order.service_fee:
        lines.append(_line("Service Fee", _money(order.service_fee)))
    lines.append(_line("Tax", _money(order.tax)))
    if order.tip:
        lines.append(_line("Tip", _money(order.tip)))
    lines.append(_line("TOTAL", _money(order.total)))

    if order.special_instructions:
        lines += [rule, "Instructions:", order.special_instructions]
    lines += ["", _center("Thank you!")]
    return "\n".join(lines) + "\n"


def build_epos_xml(text: str, cut: bool = True) -> str:
    body = escape(text).replace("\n", "&#10;")
    parts = [
        '<?xml version="1.0" encoding="utf-8"?>',
        f'<s:Envelope xmlns:s="{SOAP_NAMESPACE}">',
        "<s:Body>",
        f'<epos-print xmlns="{EPOS_NAMESPACE}">',
        '<text lang="en" smooth="true">',
        body,
        "</text>",
        '<feed line="3"/>',
    ]
    if cut:
        parts.append('<cut type="feed"/>')
    parts += ["</epos-print>", "</s:Body>", "</s:Envelope>"]
    return "".join(parts)


def validate_printer_address(ip_address: str, port) -> None:
    if not 1 <= int(port) <= 65535:
        raise ValidationError(f"Invalid printer port {port}")
    if ip_address == "localhost":
        return
    try:
        ipaddress.IPv4Address(ip_address)
    except ValueError:
        raise ValidationError(f"Invalid printer IP address {ip_address!r}")


def printer_url(printer: PrinterConfig) -> str:
    return f"http://{printer.ip_address}:{printer.port}{EPOS_PATH}"


def send_to_printer(printer: PrinterConfig, text: str) -> PrintResult:
    validate_printer_address(printer.ip_address, printer.port)
    try:
        response = requests.post(
            printer_url(printer),
            data=build_epos_xml(text).encode("utf-8"),
            headers={"Content-Type": "text/xml; charset=utf-8", "SOAPAction": '""'},
            timeout=getattr(settings, "PRINTER_TIMEOUT_SECONDS", 10),
        )
    except requests.exceptions.RequestException as e:
        logger.error("Printer %s unreachable: %s", printer, e)
        return PrintResult(success=False, printer=printer.name, message=f"Printer unreachable: {e}"[:300])

    if not 200 <= response.status_code < 300:
        logger.error("Printer %s returned HTTP %s", printer, response.status_code)
        return PrintResult(success=False, printer=printer.name, message=f"HTTP {response.status_code}")

    match = re.search(r'success="(true|false)"', response.text or "")
    if match and match.group(1) == "false":
        code = re.search(r'code="([^"]*)"', response.text)
        message = f"Printer error {code.group(1)}" if code and code.group(1) else "Printer reported failure"
        logger.error("Printer %s rejected job: %s", printer, message)
        return PrintResult(success=False, printer=printer.name, message=message)

    return PrintResult(success=True, printer=printer.name, message="Printed")


def select_printer(printer_id=None) -> PrinterConfig:
    qs = PrinterConfig.objects.filter(is_active=True)
    printer = qs.filter(pk=printer_id).first() if printer_id else qs.order_by("-is_primary", "id").first()
    if printer is None:
        raise NotFoundError("No active printer configured")
    return printer


def print_order(order: Order, printer_id=None) -> PrintResult:
    printer = select_printer(printer_id)
    result = send_to_printer(printer, format_receipt(order))
    logger.info("Print order %s on %s: %s", order.pk, printer.name, result.message)
    return result


@transaction.atomic
def set_primary(printer_id) -> PrinterConfig:
    printer = PrinterConfig.objects.select_for_update().filter(pk=printer_id).first()
    if printer is None:
        raise NotFoundError("Printer not found")
    PrinterConfig.objects.filter(is_primary=True).exclude(pk=printer.pk).update(is_primary=False)
    printer.is_primary = True
    printer.is_active = True
    printer.save(update_fields=["is_primary", "is_active", "updated_at"])
    return printer
