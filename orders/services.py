# orders/services.py
import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from common.errors import AppError, ErrorKind, NotFoundError, ValidationError
from loyalty.services import award_points_for_order
from loyalty.vouchers import mark_used, validate_voucher
from .models import Order, OrderItem

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

ALLOWED_TRANSITIONS = {
    Order.PENDING: {Order.COOKING, Order.CANCELLED},
    Order.COOKING: {Order.READY, Order.COMPLETED, Order.CANCELLED},
    Order.READY: {Order.COMPLETED, Order.CANCELLED},
    Order.COMPLETED: {Order.PICKED_UP, Order.DELIVERED},
}


class InvalidStatusTransition(AppError):
    kind = ErrorKind.VALIDATION

    def __init__(self, current, requested):
        super().__init__(
            f"Cannot change order status from {current} to {requested}",
            details={
                "current": current,
                "requested": requested,
                "allowed": sorted(ALLOWED_TRANSITIONS.get(current, ())),
            },
        )


def _queue_confirmation(order_id):
    from notifications.tasks import send_order_confirmation_task

    transaction.on_commit(lambda: send_order_confirmation_task.delay(order_id))


def _queue_dispatch(order_id):
    from delivery.tasks import dispatch_order_task

    transaction.on_commit(lambda: dispatch_order_task.delay(order_id))


def _should_dispatch(order) -> bool:
    return (
        order.is_delivery
        and order.payment_status == Order.PAYMENT_COMPLETED
        and not order.shipday_order_id
    )


@transaction.atomic
def create_order(*, user=None, items, order_type=Order.PICKUP, payment_status=Order.PAYMENT_PENDING,
                 tax=ZERO, delivery_fee=ZERO, service_fee=ZERO, tip=ZERO, total=None,
                 voucher_code=None, **details) -> Order:
    """
    Create an order with its items. ``details`` carries the customer/address
    fields (customer_name, phone, email, address, address_data,
    special_instructions, fulfillment_time, scheduled_time).
    """
    if not items:
        raise ValidationError("Order must contain at least one item")
    for item in items:
        if int(item.get("quantity", 1)) <= 0:
            raise ValidationError(f"Invalid quantity for {item.get('name')}")
    if order_type == Order.DELIVERY and not (details.get("address") or details.get("address_data")):
        raise ValidationError("Delivery orders require an address")

    subtotal = sum(
        (Decimal(str(i["unit_price"])) * int(i.get("quantity", 1)) for i in items), ZERO
    )

    voucher = None
    discount = ZERO
    if voucher_code:
        if user is None:
            raise ValidationError("Sign in to use a voucher")
        quote = validate_voucher(user, voucher_code, subtotal)
        voucher = quote.voucher
        discount = min(quote.discount, delivery_fee) if quote.applies_to_delivery_fee else quote.discount

    if total is None:
        total = max(subtotal + tax + delivery_fee + service_fee + tip - discount, ZERO)

    if user is not None:
        details.setdefault("customer_name", user.get_full_name() or user.username)
        details.setdefault("email", user.email or "")
        if not details.get("phone"):
            details["phone"] = user.phone

    order = Order.objects.create(
        user=user,
        supabase_user_id=(user.supabase_user_id or "") if user else "",
        order_type=order_type,
        payment_status=payment_status,
        subtotal=subtotal,
        tax=tax,
        delivery_fee=delivery_fee,
        service_fee=service_fee,
        tip=tip,
        discount=discount,
        total=total,
        **details,
    )
    OrderItem.objects.bulk_create([
        OrderItem(
            order=order,
            name=i["name"],
            unit_price=i["unit_price"],
            quantity=int(i.get("quantity", 1)),
            options=i.get("options") or [],
            special_instructions=i.get("special_instructions") or "",
        )
        for i in items
    ])
    if voucher is not None:
        mark_used(voucher, order)

    logger.info("Created %s order %s for %s (total %s)", order_type, order.pk, user.pk if user else "guest", total)
    _queue_confirmation(order.pk)
    if _should_dispatch(order):
        _queue_dispatch(order.pk)
    return order


def transition_order(order_id, new_status, actor=None) -> Order:
    """
    Move an order to ``new_status``. Fulfilling an order credits its points
    in the same transaction.
    """
    with transaction.atomic():
        order = Order.objects.select_for_update().filter(pk=order_id).first()
        if order is None:
            raise NotFoundError("Order not found")
        if new_status not in ALLOWED_TRANSITIONS.get(order.status, ()):
            raise InvalidStatusTransition(order.status, new_status)

        previous = order.status
        order.status = new_status
        fields = ["status", "updated_at"]
        if new_status in Order.FULFILLED_STATUSES and order.completed_at is None:
            order.completed_at = timezone.now()
            fields.append("completed_at")
        order.save(update_fields=fields)

        if new_status in Order.FULFILLED_STATUSES:
            award_points_for_order(order)
        if new_status == Order.COOKING and _should_dispatch(order):
            _queue_dispatch(order.pk)

    logger.info(
        "Order %s: %s -> %s by %s",
        order.pk, previous, new_status, getattr(actor, "pk", None),
    )
    return order
