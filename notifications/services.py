# notifications/services.py
"""
Order confirmation texts through Twilio's REST API.

Sending never raises into the order flow: every attempt ends up as an SmsLog
row (sent, failed or skipped).
"""
import logging
import re

import requests
from django.conf import settings
from django.utils import timezone

from common.errors import ExternalServiceError
from orders.models import Order
from .models import SmsLog, SmsPreference

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
SMS_MAX_LENGTH = 160


def normalize_phone(raw) -> str | None:
    """E.164 for US numbers; None when the number can't be used."""
    raw = str(raw or "").strip()
    digits = re.sub(r"\D", "", raw)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if raw.startswith("+") and 8 <= len(digits) <= 15:
        return f"+{digits}"
    return None


def twilio_configured() -> bool:
    return bool(settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_PHONE_NUMBER)


def order_updates_allowed(order: Order, phone: str) -> bool:
    pref = None
    if order.user_id:
        pref = SmsPreference.objects.filter(user_id=order.user_id).first()
    if pref is None:
        pref = SmsPreference.objects.filter(phone=phone).first()
    return pref is None or pref.order_updates_enabled


def build_confirmation_message(order: Order) -> str:
    order_kind = "delivery" if order.is_delivery else "pickup"
    when = ""
    if order.fulfillment_time == Order.SCHEDULED and order.scheduled_time:
        local = timezone.localtime(order.scheduled_time)
        when = f" Scheduled for {local.strftime('%b %d %I:%M %p').replace(' 0', ' ')}."

    message = (
        f"{settings.STORE_NAME}: Order #{order.pk} confirmed!{when} "
        f"Total: ${order.total:.2f} ({order_kind}). "
        f"Track your order at {settings.ORDER_TRACKING_URL}"
    )
    if len(message) > SMS_MAX_LENGTH:
        message = f"{settings.STORE_NAME}: Order #{order.pk} confirmed! Total: ${order.total:.2f} ({order_kind})."
    return message


def send_sms(to: str, body: str) -> str:
    """Send one text and return Twilio's message SID."""
    url = TWILIO_MESSAGES_URL.format(sid=settings.TWILIO_ACCOUNT_SID)
    try:
        response = requests.post(
            url,
            data={"To": to, "From": settings.TWILIO_PHONE_NUMBER, "Body": body},
            auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
            timeout=getattr(settings, "INTEGRATION_TIMEOUT_SECONDS", 15),
        )
    except requests.exceptions.RequestException as e:
        raise ExternalServiceError(f"Twilio request failed: {e}")

    if not 200 <= response.status_code < 300:
        raise ExternalServiceError(f"Twilio HTTP {response.status_code}: {response.text[:300]}")
    try:
        body = response.json()
    except ValueError:
        raise ExternalServiceError(f"Twilio returned a non-JSON reply: {response.text[:300]}")
    if not isinstance(body, dict):
        raise ExternalServiceError("Twilio returned an unexpected reply")
    return body.get("sid", "")


def _log(order, phone, message, status, **extra) -> SmsLog:
    return SmsLog.objects.create(
        order=order,
        phone=phone or "",
        message=message,
        status=status,
        **extra,
    )


def send_order_confirmation(order: Order) -> SmsLog:
    phone = normalize_phone(order.phone)
    if not settings.SMS_ENABLED:
        return _log(order, phone, "", SmsLog.SKIPPED, error_message="SMS disabled")
    if not twilio_configured():
        logger.warning("Twilio not configured; skipping confirmation for order %s", order.pk)
        return _log(order, phone, "", SmsLog.SKIPPED, error_message="Twilio not configured")
    if not phone:
        return _log(order, order.phone, "", SmsLog.SKIPPED, error_message="Invalid phone number")
    if not order_updates_allowed(order, phone):
        return _log(order, phone, "", SmsLog.SKIPPED, error_message="Customer opted out of order updates")

    message = build_confirmation_message(order)
    try:
        sid = send_sms(phone, message)
    except ExternalServiceError as e:
        logger.error("Order %s confirmation SMS failed: %s", order.pk, e.detail)
        return _log(order, phone, message, SmsLog.FAILED, error_message=str(e.detail)[:1000])

    logger.info("Order %s confirmation SMS sent (%s)", order.pk, sid)
    return _log(order, phone, message, SmsLog.SENT, provider_message_id=sid)
