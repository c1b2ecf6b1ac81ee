# printing/views.py
from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import IsAdminRole, IsStaffRole
from orders.models import Order
from .models import PrinterConfig
from .serializers import PrintOrderSerializer, PrinterConfigSerializer
from . import services


class PrinterConfigViewSet(viewsets.ModelViewSet):
    """
    /api/v1/printers
    /api/v1/printers/<pk>/set-primary
    """

    serializer_class = PrinterConfigSerializer
    permission_classes = [IsAdminRole]
    queryset = PrinterConfig.objects.all()
    pagination_class = None

    @action(detail=True, methods=["post"], url_path="set-primary")
    def set_primary(self, request, pk=None):
        printer = services.set_primary(pk)
        return Response(PrinterConfigSerializer(printer).data)


class PrintOrderView(APIView):
    """
    POST /api/v1/printer/print-order
    {"orderId": 123, "printerId"?: 1}
    """

    permission_classes = [IsStaffRole]

    def post(self, request):
        serializer = PrintOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = get_object_or_404(Order.objects.prefetch_related("items"), pk=data["orderId"])
        result = services.print_order(order, data.get("printerId"))
        return Response(
            result.as_dict(),
            status=status.HTTP_200_OK if result.success else status.HTTP_502_BAD_GATEWAY,
        )
