# delivery/views.py
from django.conf import settings
from django.shortcuts import get_object_or_404
from rest_framework import generics, permissions, status, viewsets
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import IsAdminRole, IsStaffRole
from orders.models import Order
from .models import DeliveryBlackout, DeliveryZone, StoreSettings
from .serializers import (
    DeliveryBlackoutSerializer,
    DeliveryFeeRequestSerializer,
    DeliveryZoneSerializer,
    DispatchRequestSerializer,
    StoreSettingsSerializer,
)
from .services import LocationRequiredError, quote_delivery
from .shipday import dispatch_order


class DeliveryFeeView(APIView):
    """
    POST /api/v1/delivery/fee
    {"latitude": .., "longitude": .., "zipCode": ".."}

    Geocoding happens in the storefront; an address without coordinates
    cannot be priced.
    """

    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = DeliveryFeeRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if data.get("latitude") is None or data.get("longitude") is None:
            raise LocationRequiredError()
        quote = quote_delivery(data["latitude"], data["longitude"], data.get("zipCode"))
        return Response(quote.as_dict())


class DeliveryZoneViewSet(viewsets.ModelViewSet):
    """
    /api/v1/delivery/zones
    """

    serializer_class = DeliveryZoneSerializer
    permission_classes = [IsAdminRole]
    queryset = DeliveryZone.objects.all()
    pagination_class = None


class DeliveryBlackoutViewSet(viewsets.ModelViewSet):
    """
    /api/v1/delivery/blackouts
    """

    serializer_class = DeliveryBlackoutSerializer
    permission_classes = [IsAdminRole]
    queryset = DeliveryBlackout.objects.order_by("id")
    pagination_class = None


class StoreSettingsView(generics.RetrieveUpdateAPIView):
    """
    GET /api/v1/delivery/settings
    PUT/PATCH /api/v1/delivery/settings
    """

    serializer_class = StoreSettingsSerializer

    def get_permissions(self):
        if self.request.method in permissions.SAFE_METHODS:
            return [permissions.AllowAny()]
        return [IsAdminRole()]

    def get_object(self):
        store = StoreSettings.current()
        if store is None:
            store = StoreSettings.objects.create(store_name=settings.STORE_NAME)
        return store


class ShipdayDispatchView(APIView):
    """
    POST /api/v1/delivery/shipday/dispatch
    {"orderId": 123}
    """

    permission_classes = [IsStaffRole]

    def post(self, request):
        serializer = DispatchRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = get_object_or_404(Order, pk=serializer.validated_data["orderId"])
        result = dispatch_order(order)
        return Response(
            result.as_dict(),
            status=status.HTTP_200_OK if result.success or result.skipped else status.HTTP_502_BAD_GATEWAY,
        )
