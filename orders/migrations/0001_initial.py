from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("supabase_user_id", models.CharField(blank=True, default="", max_length=64)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("cooking", "Cooking"), ("ready", "Ready"), ("completed", "Completed"), ("picked_up", "Picked up"), ("delivered", "Delivered"), ("cancelled", "Cancelled")], default="pending", max_length=16)),
                ("order_type", models.CharField(choices=[("delivery", "Delivery"), ("pickup", "Pickup")], default="pickup", max_length=16)),
                ("payment_status", models.CharField(choices=[("pending", "Pending"), ("completed", "Completed"), ("failed", "Failed"), ("refunded", "Refunded")], default="pending", max_length=16)),
                ("subtotal", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("tax", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("delivery_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("service_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("tip", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("discount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("customer_name", models.CharField(blank=True, default="", max_length=255)),
                ("phone", models.CharField(blank=True, default="", max_length=32)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("address", models.CharField(blank=True, default="", max_length=500)),
                ("address_data", models.JSONField(blank=True, null=True)),
                ("special_instructions", models.TextField(blank=True, default="")),
                ("fulfillment_time", models.CharField(choices=[("asap", "ASAP"), ("scheduled", "Scheduled")], default="asap", max_length=16)),
                ("scheduled_time", models.DateTimeField(blank=True, null=True)),
                ("shipday_order_id", models.CharField(blank=True, default="", max_length=64)),
                ("shipday_status", models.CharField(blank=True, default="", max_length=32)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="orders", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
                    models.Index(fields=["user", "created_at"], name="order_user_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("options", models.JSONField(blank=True, default=list)),
                ("special_instructions", models.CharField(blank=True, default="", max_length=500)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="orders.order")),
            ],
            options={
                "ordering": ["id"],
            },
        ),
    ]
