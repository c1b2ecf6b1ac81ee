# orders/admin.py
from django.contrib import admin

from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ["name", "unit_price", "quantity", "options", "special_instructions"]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    date_hierarchy = "created_at"
    list_display = ["id", "created_at", "customer_name", "order_type", "status", "payment_status", "total", "shipday_status"]
    list_filter = ["status", "order_type", "payment_status"]
    search_fields = ["id", "customer_name", "phone", "email", "shipday_order_id"]
    # status changes go through the API so points are credited
    readonly_fields = ["status", "completed_at", "shipday_order_id", "shipday_status", "created_at", "updated_at"]
    inlines = [OrderItemInline]
