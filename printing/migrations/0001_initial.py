from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PrinterConfig",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=100)),
                ("ip_address", models.CharField(max_length=64)),
                ("port", models.PositiveIntegerField(default=80)),
                ("location", models.CharField(blank=True, default="", max_length=100)),
                ("is_active", models.BooleanField(default=True)),
                ("is_primary", models.BooleanField(default=False)),
            ],
            options={
                "ordering": ["-is_primary", "name", "id"],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("is_primary", True)), fields=("is_primary",), name="printer_single_primary"),
                ],
            },
        ),
    ]
