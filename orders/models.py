# orders/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models

from common.models import TimeStampedModel


class Order(TimeStampedModel):
    PENDING = "pending"
    COOKING = "cooking"
    READY = "ready"
    COMPLETED = "completed"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (COOKING, "Cooking"),
        (READY, "Ready"),
        (COMPLETED, "Completed"),
        (PICKED_UP, "Picked up"),
        (DELIVERED, "Delivered"),
        (CANCELLED, "Cancelled"),
    ]
    FULFILLED_STATUSES = (COMPLETED, PICKED_UP, DELIVERED)

    DELIVERY = "delivery"
    PICKUP = "pickup"
    ORDER_TYPE_CHOICES = [
        (DELIVERY, "Delivery"),
        (PICKUP, "Pickup"),
    ]

    PAYMENT_PENDING = "pending"
    PAYMENT_COMPLETED = "completed"
    PAYMENT_FAILED = "failed"
    PAYMENT_REFUNDED = "refunded"
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_COMPLETED, "Completed"),
        (PAYMENT_FAILED, "Failed"),
        (PAYMENT_REFUNDED, "Refunded"),
    ]

    ASAP = "asap"
    SCHEDULED = "scheduled"
    FULFILLMENT_CHOICES = [
        (ASAP, "ASAP"),
        (SCHEDULED, "Scheduled"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="orders",
    )
    supabase_user_id = models.CharField(max_length=64, blank=True, default="")
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=PENDING)
    order_type = models.CharField(max_length=16, choices=ORDER_TYPE_CHOICES, default=PICKUP)
    payment_status = models.CharField(
        max_length=16, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING
    )

    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    tax = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    service_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    tip = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    discount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))

    customer_name = models.CharField(max_length=255, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    address = models.CharField(max_length=500, blank=True, default="")
    # street / city / state / zipCode / latitude / longitude as sent by the storefront
    address_data = models.JSONField(null=True, blank=True)
    special_instructions = models.TextField(blank=True, default="")
    fulfillment_time = models.CharField(max_length=16, choices=FULFILLMENT_CHOICES, default=ASAP)
    scheduled_time = models.DateTimeField(null=True, blank=True)

    shipday_order_id = models.CharField(max_length=64, blank=True, default="")
    shipday_status = models.CharField(max_length=32, blank=True, default="")
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
            models.Index(fields=["user", "created_at"], name="order_user_created_idx"),
        ]

    def __str__(self):
        return f"Order #{self.pk}"

    @property
    def is_delivery(self) -> bool:
        return self.order_type == self.DELIVERY


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    name = models.CharField(max_length=255)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    # [{"groupName": "Size", "itemName": "Large", "price": 2.0}, ...]
    options = models.JSONField(default=list, blank=True)
    special_instructions = models.CharField(max_length=500, blank=True, default="")

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.quantity} x {self.name}"

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity
