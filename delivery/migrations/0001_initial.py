from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="DeliveryBlackout",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("area_name", models.CharField(max_length=100)),
                ("zip_codes", models.JSONField(default=list)),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="DeliveryZone",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("zone_name", models.CharField(max_length=100)),
                ("min_distance_miles", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=6)),
                ("max_distance_miles", models.DecimalField(decimal_places=2, max_digits=6)),
                ("delivery_fee", models.DecimalField(decimal_places=2, max_digits=8)),
                ("estimated_time_minutes", models.PositiveIntegerField(default=30)),
                ("is_active", models.BooleanField(default=True)),
                ("sort_order", models.PositiveIntegerField(default=0)),
            ],
            options={
                "ordering": ["min_distance_miles", "sort_order", "id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("max_distance_miles__gt", models.F("min_distance_miles"))), name="delivery_zone_band_not_empty"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StoreSettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("store_name", models.CharField(max_length=255)),
                ("address", models.CharField(blank=True, default="", max_length=500)),
                ("city", models.CharField(blank=True, default="", max_length=100)),
                ("state", models.CharField(blank=True, default="", max_length=50)),
                ("zip_code", models.CharField(blank=True, default="", max_length=20)),
                ("phone", models.CharField(blank=True, default="", max_length=32)),
                ("latitude", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("longitude", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("max_delivery_distance_miles", models.DecimalField(decimal_places=2, default=Decimal("10.00"), max_digits=6)),
            ],
            options={
                "verbose_name_plural": "store settings",
            },
        ),
    ]
