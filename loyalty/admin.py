# loyalty/admin.py

from django.contrib import admin
from django.db.models import Count
from django.urls import reverse
from django.utils.html import format_html

from .models import LoyaltyProgram, PointsReward, PointsTransaction, UserPoints, Voucher


@admin.register(LoyaltyProgram)
class LoyaltyProgramAdmin(admin.ModelAdmin):
    list_display = [
        "name", "is_active", "points_per_dollar", "bonus_points_threshold",
        "bonus_points_multiplier", "updated_at",
    ]
    list_editable = ["is_active", "points_per_dollar"]
    list_filter = ["is_active"]


@admin.register(UserPoints)
class UserPointsAdmin(admin.ModelAdmin):
    list_display = [
        "user_link", "points", "total_earned", "total_redeemed",
        "transaction_count", "last_earned_at", "updated_at",
    ]
    search_fields = ["user__username", "user__email", "user__first_name", "user__last_name"]
    # balances are only changed through the ledger
    readonly_fields = ["user", "points", "total_earned", "total_redeemed", "last_earned_at", "updated_at"]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("user").annotate(
            transaction_count=Count("user__points_transactions", distinct=True)
        )

    def transaction_count(self, obj):
        return obj.transaction_count
    transaction_count.short_description = "Transactions"
    transaction_count.admin_order_field = "transaction_count"

    def user_link(self, obj):
        url = reverse("admin:accounts_user_change", args=[obj.user_id])
        return format_html('<a href="{}">{}</a>', url, obj.user)
    user_link.short_description = "User"
    user_link.admin_order_field = "user__username"

    def has_add_permission(self, request):    return False


@admin.register(PointsTransaction)
class PointsTransactionAdmin(admin.ModelAdmin):
    date_hierarchy = "created_at"
    list_display = ["created_at", "user", "type", "points", "source", "order_link", "description"]
    list_filter = ["type", "source", "created_at"]
    search_fields = ["user__username", "user__email", "description", "idempotency_key"]
    readonly_fields = [
        "user", "type", "points", "order", "description", "order_amount",
        "source", "idempotency_key", "created_by", "created_at",
    ]

    def has_add_permission(self, request):    return False
    def has_change_permission(self, request, obj=None): return False
    def has_delete_permission(self, request, obj=None): return False

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("user", "order")

    def order_link(self, obj):
        if not obj.order_id:
            return "-"
        url = reverse("admin:orders_order_change", args=[obj.order_id])
        return format_html('<a href="{}">Order #{}</a>', url, obj.order_id)
    order_link.short_description = "Order"


@admin.register(PointsReward)
class PointsRewardAdmin(admin.ModelAdmin):
    list_display = ["name", "points_required", "discount_type", "discount_amount", "is_active"]
    list_editable = ["is_active"]
    list_filter = ["discount_type", "is_active"]
    search_fields = ["name"]


@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    list_display = ["code", "user", "discount_type", "discount_amount", "status", "expires_at", "used_at"]
    list_filter = ["status", "discount_type"]
    search_fields = ["code", "user__username", "user__email"]
    readonly_fields = ["points_transaction", "points_spent", "created_at"]
