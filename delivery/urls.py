# delivery/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    DeliveryBlackoutViewSet,
    DeliveryFeeView,
    DeliveryZoneViewSet,
    ShipdayDispatchView,
    StoreSettingsView,
)

app_name = "delivery"

router = DefaultRouter(trailing_slash=False)
router.register(r"delivery/zones", DeliveryZoneViewSet, basename="delivery-zones")
router.register(r"delivery/blackouts", DeliveryBlackoutViewSet, basename="delivery-blackouts")

urlpatterns = [
    path("delivery/fee", DeliveryFeeView.as_view(), name="fee"),
    path("delivery/settings", StoreSettingsView.as_view(), name="settings"),
    path("delivery/shipday/dispatch", ShipdayDispatchView.as_view(), name="shipday-dispatch"),
    path("", include(router.urls)),
]
