# notifications/urls.py
from django.urls import path

from .views import OrderConfirmationView, SmsPreferenceView

app_name = "notifications"

urlpatterns = [
    path("sms/order-confirmation", OrderConfirmationView.as_view(), name="order-confirmation"),
    path("sms/preferences", SmsPreferenceView.as_view(), name="preferences"),
]
