# delivery/shipday.py
"""
Hand paid delivery orders to Shipday so a driver gets assigned.
"""
import logging
import re
from dataclasses import dataclass

import requests
from django.conf import settings

from orders.models import Order
from .models import StoreSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    skipped: bool = False
    shipday_order_id: str = ""
    message: str = ""

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "skipped": self.skipped,
            "shipdayOrderId": self.shipday_order_id or None,
            "message": self.message,
        }


def _digits(value) -> str:
    return re.sub(r"\D", "", str(value or ""))


def _item_name(item) -> str:
    chosen = [
        opt.get("itemName") or opt.get("name")
        for opt in item.options or []
        if isinstance(opt, dict) and (opt.get("itemName") or opt.get("name"))
    ]
    if not chosen:
        return item.name
    return f"{item.name} ({', '.join(chosen)})"


def build_payload(order: Order, store: StoreSettings | None) -> dict:
    address = order.address_data or {}
    prefix = getattr(settings, "ORDER_NUMBER_PREFIX", "FAV")
    payload = {
        "orderNumber": f"{prefix}-{order.pk}",
        "customerName": order.customer_name or "Customer",
        "customerAddress": ", ".join(
            p for p in [
                address.get("street"),
                address.get("city"),
                f"{address.get('state', '')} {address.get('zipCode', '')}".strip(),
            ] if p
        ),
        "customerPhoneNumber": _digits(order.phone),
        "customerEmail": order.email or "",
        "restaurantName": store.store_name if store else settings.STORE_NAME,
        "restaurantAddress": store.full_address if store else "",
        "restaurantPhoneNumber": _digits(store.phone if store else settings.STORE_PHONE),
        "orderItem": [
            {
                "name": _item_name(item),
                "unitPrice": float(item.unit_price),
                "quantity": item.quantity,
                "addOns": [],
                "detail": item.special_instructions or "",
            }
            for item in order.items.all()
        ],
        "tips": float(order.tip),
        "tax": float(order.tax),
        "deliveryFee": float(order.delivery_fee),
        "totalOrderCost": float(order.total),
        "deliveryInstruction": order.special_instructions or "",
        "paymentMethod": "credit_card",
    }
    if address.get("latitude") is not None and address.get("longitude") is not None:
        payload["deliveryLatitude"] = address["latitude"]
        payload["deliveryLongitude"] = address["longitude"]
    if store and store.latitude is not None and store.longitude is not None:
        payload["pickupLatitude"] = float(store.latitude)
        payload["pickupLongitude"] = float(store.longitude)
    if order.fulfillment_time == Order.SCHEDULED and order.scheduled_time:
        payload["expectedDeliveryDate"] = order.scheduled_time.date().isoformat()
        payload["expectedDeliveryTime"] = order.scheduled_time.strftime("%H:%M:%S")
    return payload


def dispatch_order(order: Order) -> DispatchResult:
    api_key = getattr(settings, "SHIPDAY_API_KEY", "")
    if not api_key:
        return DispatchResult(success=False, skipped=True, message="Shipday is not configured")
    if order.order_type != Order.DELIVERY:
        return DispatchResult(success=False, skipped=True, message="Not a delivery order")
    if order.payment_status != Order.PAYMENT_COMPLETED:
        return DispatchResult(success=False, skipped=True, message="Payment not completed")
    if order.shipday_order_id:
        return DispatchResult(
            success=True, skipped=True, shipday_order_id=order.shipday_order_id,
            message="Already dispatched",
        )
    address = order.address_data or {}
    if not (address.get("street") and address.get("city")):
        return DispatchResult(success=False, skipped=True, message="Delivery address is incomplete")

    payload = build_payload(order, StoreSettings.current())
    try:
        response = requests.post(
            settings.SHIPDAY_API_URL,
            json=payload,
            headers={
                "Authorization": f"Basic {api_key}",
                "Content-Type": "application/json",
            },
            timeout=getattr(settings, "INTEGRATION_TIMEOUT_SECONDS", 15),
        )
    except requests.exceptions.RequestException as e:
        logger.error("Shipday request for order %s failed: %s", order.pk, e)
        return DispatchResult(success=False, message=f"Shipday request failed: {e}"[:500])

    if not 200 <= response.status_code < 300:
        logger.error("Shipday rejected order %s: HTTP %s %s", order.pk, response.status_code, response.text[:500])
        return DispatchResult(success=False, message=f"HTTP {response.status_code}: {response.text[:200]}")

    try:
        body = response.json()
    except ValueError:
        body = {}
    shipday_id = str(body.get("orderId") or body.get("id") or "")

    Order.objects.filter(pk=order.pk).update(shipday_order_id=shipday_id, shipday_status="pending")
    order.shipday_order_id = shipday_id
    order.shipday_status = "pending"
    logger.info("Order %s dispatched to Shipday as %s", order.pk, shipday_id)
    return DispatchResult(success=True, shipday_order_id=shipday_id, message="Order sent to Shipday")
