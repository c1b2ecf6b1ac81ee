# orders/views.py
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import IsStaffRole
from common.roles import is_staff_role
from .models import Order
from .serializers import OrderCreateSerializer, OrderSerializer, OrderStatusSerializer
from .services import create_order, transition_order


def _is_staff(request):
    return request.user.is_authenticated and is_staff_role(request.user.role)


class OrderListCreateView(generics.ListCreateAPIView):
    """
    GET /api/v1/orders      customers see their own orders, staff see all (?status=)
    POST /api/v1/orders     signed-in or guest checkout
    """

    serializer_class = OrderSerializer

    def get_permissions(self):
        if self.request.method == "POST":
            return [permissions.AllowAny()]
        return [permissions.IsAuthenticated()]

    def get_queryset(self):
        qs = Order.objects.prefetch_related("items")
        if not _is_staff(self.request):
            qs = qs.filter(user=self.request.user)
        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        items = [dict(i) for i in data.pop("items")]
        for key in ("customer_name", "phone", "email", "address", "special_instructions"):
            if not data.get(key):
                data.pop(key, None)

        user = request.user if request.user.is_authenticated else None
        order = create_order(user=user, items=items, **data)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class OrderDetailView(generics.RetrieveAPIView):
    """
    GET /api/v1/orders/<pk>
    """

    serializer_class = OrderSerializer

    def get_queryset(self):
        qs = Order.objects.prefetch_related("items")
        if _is_staff(self.request):
            return qs
        return qs.filter(user=self.request.user)


class OrderStatusView(APIView):
    """
    PATCH /api/v1/orders/<pk>/status
    {"status": "cooking"}
    """

    permission_classes = [IsStaffRole]

    def patch(self, request, pk):
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = transition_order(pk, serializer.validated_data["status"], actor=request.user)
        order = Order.objects.prefetch_related("items").get(pk=order.pk)
        return Response(OrderSerializer(order).data)
