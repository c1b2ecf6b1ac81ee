# printing/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import PrintOrderView, PrinterConfigViewSet

app_name = "printing"

router = DefaultRouter(trailing_slash=False)
router.register(r"printers", PrinterConfigViewSet, basename="printers")

urlpatterns = [
    path("printer/print-order", PrintOrderView.as_view(), name="print-order"),
    path("", include(router.urls)),
]
