# accounts/admin.py
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("id", "username", "email", "role", "rewards", "is_active", "date_joined")
    list_filter = ("role", "is_active", "marketing_opt_in")
    search_fields = ("username", "email", "first_name", "last_name", "phone", "supabase_user_id")
    readonly_fields = ("rewards", "supabase_user_id", "date_joined", "updated_at")
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Pizzeria", {"fields": ("role", "phone", "address", "city", "state", "zip_code",
                                 "marketing_opt_in", "rewards", "supabase_user_id", "updated_at")}),
    )
