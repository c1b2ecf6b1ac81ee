# delivery/admin.py
from django.contrib import admin

from .models import DeliveryBlackout, DeliveryZone, StoreSettings


@admin.register(StoreSettings)
class StoreSettingsAdmin(admin.ModelAdmin):
    list_display = ["store_name", "phone", "latitude", "longitude", "max_delivery_distance_miles"]


@admin.register(DeliveryZone)
class DeliveryZoneAdmin(admin.ModelAdmin):
    list_display = ["zone_name", "min_distance_miles", "max_distance_miles", "delivery_fee", "estimated_time_minutes", "is_active"]
    list_editable = ["delivery_fee", "is_active"]
    list_filter = ["is_active"]


@admin.register(DeliveryBlackout)
class DeliveryBlackoutAdmin(admin.ModelAdmin):
    list_display = ["area_name", "reason", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["area_name"]
