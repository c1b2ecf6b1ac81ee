# printing/models.py
from django.db import models
from django.db.models import Q

from common.models import TimeStampedModel


class PrinterConfig(TimeStampedModel):
    """
    Network receipt printer reachable over Epson ePOS-Print.
    """

    name = models.CharField(max_length=100)
    ip_address = models.CharField(max_length=64)
    port = models.PositiveIntegerField(default=80)
    location = models.CharField(max_length=100, blank=True, default="")
    is_active = models.BooleanField(default=True)
    is_primary = models.BooleanField(default=False)

    class Meta:
        ordering = ["-is_primary", "name", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["is_primary"],
                condition=Q(is_primary=True),
                name="printer_single_primary",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.ip_address}:{self.port})"
