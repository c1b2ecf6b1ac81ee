from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="LoyaltyProgram",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(default="Rewards", max_length=100)),
                ("is_active", models.BooleanField(default=True)),
                ("points_per_dollar", models.DecimalField(decimal_places=2, default=Decimal("1.00"), help_text="Points earned per 1.00 of order total.", max_digits=6)),
                ("bonus_points_threshold", models.DecimalField(decimal_places=2, default=Decimal("50.00"), help_text="Orders at or above this total earn the bonus multiplier.", max_digits=10)),
                ("bonus_points_multiplier", models.DecimalField(decimal_places=2, default=Decimal("1.50"), max_digits=4)),
                ("points_for_first_order", models.PositiveIntegerField(default=50)),
                ("points_for_signup", models.PositiveIntegerField(default=100)),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="PointsReward",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=120)),
                ("description", models.TextField(blank=True, default="")),
                ("points_required", models.PositiveIntegerField()),
                ("discount_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("discount_type", models.CharField(choices=[("fixed", "Fixed amount"), ("percentage", "Percentage"), ("delivery_fee", "Delivery fee")], default="fixed", max_length=16)),
                ("min_order_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("voucher_validity_days", models.PositiveIntegerField(default=30)),
                ("max_uses_per_user", models.PositiveIntegerField(default=1)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["points_required", "id"],
            },
        ),
        migrations.CreateModel(
            name="PointsTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(choices=[("earned", "Earned"), ("redeemed", "Redeemed")], max_length=16)),
                ("points", models.PositiveIntegerField()),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("order_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("source", models.CharField(choices=[("earn", "Earn"), ("redeem", "Redeem"), ("admin_adjustment", "Admin adjustment"), ("restore", "Restore")], default="earn", max_length=32)),
                ("idempotency_key", models.CharField(blank=True, max_length=128, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="points_transactions", to="orders.order")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="points_transactions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["user", "created_at"], name="points_tx_user_created_idx"),
                    models.Index(fields=["user", "type"], name="points_tx_user_type_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("idempotency_key__isnull", False)), fields=("user", "idempotency_key"), name="points_tx_unique_idempotency_key"),
                ],
            },
        ),
        migrations.CreateModel(
            name="UserPoints",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("points", models.IntegerField(default=0)),
                ("total_earned", models.IntegerField(default=0)),
                ("total_redeemed", models.IntegerField(default=0)),
                ("last_earned_at", models.DateTimeField(blank=True, null=True)),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="points_account", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name_plural": "user points",
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("points", models.F("total_earned") - models.F("total_redeemed"))), name="user_points_balance_matches_totals"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Voucher",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=32, unique=True)),
                ("points_spent", models.PositiveIntegerField()),
                ("discount_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("discount_type", models.CharField(choices=[("fixed", "Fixed amount"), ("percentage", "Percentage"), ("delivery_fee", "Delivery fee")], default="fixed", max_length=16)),
                ("min_order_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("status", models.CharField(choices=[("active", "Active"), ("used", "Used"), ("expired", "Expired")], default="active", max_length=10)),
                ("expires_at", models.DateTimeField()),
                ("used_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="vouchers", to="orders.order")),
                ("points_transaction", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="vouchers", to="loyalty.pointstransaction")),
                ("reward", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="vouchers", to="loyalty.pointsreward")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="vouchers", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["user", "status"], name="voucher_user_status_idx")],
            },
        ),
    ]
