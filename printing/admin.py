# printing/admin.py
from django.contrib import admin

from .models import PrinterConfig


@admin.register(PrinterConfig)
class PrinterConfigAdmin(admin.ModelAdmin):
    list_display = ["name", "ip_address", "port", "location", "is_active", "is_primary"]
    list_filter = ["is_active", "is_primary"]
