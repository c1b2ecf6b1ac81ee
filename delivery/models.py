# delivery/models.py
from decimal import Decimal

from django.db import models

from common.models import TimeStampedModel


class StoreSettings(TimeStampedModel):
    """
    Single row describing the store: where deliveries start and how far they go.
    """

    store_name = models.CharField(max_length=255)
    address = models.CharField(max_length=500, blank=True, default="")
    city = models.CharField(max_length=100, blank=True, default="")
    state = models.CharField(max_length=50, blank=True, default="")
    zip_code = models.CharField(max_length=20, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    max_delivery_distance_miles = models.DecimalField(
        max_digits=6, decimal_places=2, default=Decimal("10.00")
    )

    class Meta:
        verbose_name_plural = "store settings"

    def __str__(self):
        return self.store_name

    @classmethod
    def current(cls):
        return cls.objects.order_by("id").first()

    @property
    def full_address(self) -> str:
        parts = [self.address, self.city, f"{self.state} {self.zip_code}".strip()]
        return ", ".join(p for p in parts if p)


class DeliveryZone(TimeStampedModel):
    """
    Distance band [min_distance_miles, max_distance_miles) with its fee.
    """

    zone_name = models.CharField(max_length=100)
    min_distance_miles = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("0.00"))
    max_distance_miles = models.DecimalField(max_digits=6, decimal_places=2)
    delivery_fee = models.DecimalField(max_digits=8, decimal_places=2)
    estimated_time_minutes = models.PositiveIntegerField(default=30)
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["min_distance_miles", "sort_order", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(max_distance_miles__gt=models.F("min_distance_miles")),
                name="delivery_zone_band_not_empty",
            ),
        ]

    def __str__(self):
        return f"{self.zone_name} ({self.min_distance_miles}-{self.max_distance_miles} mi)"


class DeliveryBlackout(TimeStampedModel):
    """
    Zip codes we do not deliver to, whatever the distance.
    """

    area_name = models.CharField(max_length=100)
    zip_codes = models.JSONField(default=list)
    reason = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.area_name
