# core/urls.py
"""
URL configuration for the pizzeria backend.

Every app mounts its API under /api/v1/.
"""

from django.contrib import admin
from django.urls import include, path
from django.views.generic import RedirectView
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    path("", RedirectView.as_view(url="/admin/", permanent=False)),
    path("admin/", admin.site.urls),

    path("api/v1/", include("accounts.urls")),
    path("api/v1/", include("loyalty.urls")),
    path("api/v1/", include("orders.urls")),
    path("api/v1/", include("delivery.urls")),
    path("api/v1/", include("notifications.urls")),
    path("api/v1/", include("printing.urls")),

    # API & docs
    path("api/v1/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/v1/docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),
]
