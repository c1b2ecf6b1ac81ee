# notifications/admin.py
from django.contrib import admin

from .models import SmsLog, SmsPreference


@admin.register(SmsPreference)
class SmsPreferenceAdmin(admin.ModelAdmin):
    list_display = ["user", "phone", "order_updates_enabled", "marketing_enabled", "updated_at"]
    list_filter = ["order_updates_enabled", "marketing_enabled"]
    search_fields = ["user__username", "phone"]


@admin.register(SmsLog)
class SmsLogAdmin(admin.ModelAdmin):
    date_hierarchy = "created_at"
    list_display = ["created_at", "order", "phone", "message_type", "status"]
    list_filter = ["status", "message_type"]
    search_fields = ["phone", "provider_message_id"]

    def has_add_permission(self, request):    return False
    def has_change_permission(self, request, obj=None): return False
