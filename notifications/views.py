# notifications/views.py
from django.shortcuts import get_object_or_404
from rest_framework import serializers
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import IsStaffRole
from orders.models import Order
from .models import SmsPreference
from .services import normalize_phone, send_order_confirmation


class OrderConfirmationRequestSerializer(serializers.Serializer):
    orderId = serializers.IntegerField()


class SmsPreferenceSerializer(serializers.ModelSerializer):
    class Meta:
        model = SmsPreference
        fields = ["order_updates_enabled", "marketing_enabled", "phone", "updated_at"]
        read_only_fields = ["phone", "updated_at"]


class OrderConfirmationView(APIView):
    """
    POST /api/v1/sms/order-confirmation
    Re-send the confirmation text for an order.
    """

    permission_classes = [IsStaffRole]

    def post(self, request):
        serializer = OrderConfirmationRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = get_object_or_404(Order, pk=serializer.validated_data["orderId"])
        log = send_order_confirmation(order)
        return Response({
            "status": log.status,
            "messageId": log.provider_message_id or None,
            "error": log.error_message or None,
        })


class SmsPreferenceView(APIView):
    """
    GET /api/v1/sms/preferences
    PATCH /api/v1/sms/preferences
    """

    def _preference(self, request):
        pref, _ = SmsPreference.objects.get_or_create(
            user=request.user,
            defaults={"phone": normalize_phone(request.user.phone) or ""},
        )
        return pref

    def get(self, request):
        return Response(SmsPreferenceSerializer(self._preference(request)).data)

    def patch(self, request):
        serializer = SmsPreferenceSerializer(self._preference(request), data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)
