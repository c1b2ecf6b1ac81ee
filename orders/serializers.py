# orders/serializers.py
from decimal import Decimal

from rest_framework import serializers

from .models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ["id", "name", "unit_price", "quantity", "options", "special_instructions", "line_total"]


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "user",
            "status",
            "order_type",
            "payment_status",
            "subtotal",
            "tax",
            "delivery_fee",
            "service_fee",
            "tip",
            "discount",
            "total",
            "customer_name",
            "phone",
            "email",
            "address",
            "address_data",
            "special_instructions",
            "fulfillment_time",
            "scheduled_time",
            "shipday_order_id",
            "shipday_status",
            "completed_at",
            "created_at",
            "items",
        ]
        read_only_fields = fields


class OrderItemInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"))
    quantity = serializers.IntegerField(min_value=1, default=1)
    options = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    special_instructions = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


_MONEY = dict(max_digits=10, decimal_places=2, min_value=Decimal("0"), required=False, default=Decimal("0.00"))


class OrderCreateSerializer(serializers.Serializer):
    items = OrderItemInputSerializer(many=True, allow_empty=False)
    order_type = serializers.ChoiceField(choices=Order.ORDER_TYPE_CHOICES, default=Order.PICKUP)
    payment_status = serializers.ChoiceField(choices=Order.PAYMENT_STATUS_CHOICES, default=Order.PAYMENT_PENDING)
    tax = serializers.DecimalField(**_MONEY)
    delivery_fee = serializers.DecimalField(**_MONEY)
    service_fee = serializers.DecimalField(**_MONEY)
    tip = serializers.DecimalField(**_MONEY)
    total = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"), required=False)
    voucher_code = serializers.CharField(max_length=32, required=False, allow_blank=True)
    customer_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = serializers.CharField(max_length=500, required=False, allow_blank=True)
    address_data = serializers.JSONField(required=False, allow_null=True)
    special_instructions = serializers.CharField(required=False, allow_blank=True)
    fulfillment_time = serializers.ChoiceField(choices=Order.FULFILLMENT_CHOICES, default=Order.ASAP)
    scheduled_time = serializers.DateTimeField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs.get("fulfillment_time") == Order.SCHEDULED and not attrs.get("scheduled_time"):
            raise serializers.ValidationError({"scheduled_time": "Required for scheduled orders."})
        return attrs


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
