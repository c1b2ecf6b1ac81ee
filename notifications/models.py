# notifications/models.py
from django.conf import settings
from django.db import models

from common.models import TimeStampedModel


class SmsPreference(TimeStampedModel):
    """
    Opt-outs, keyed by user or (for guests) by normalized phone number.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name="sms_preference",
    )
    phone = models.CharField(max_length=20, blank=True, default="", db_index=True)
    order_updates_enabled = models.BooleanField(default=True)
    marketing_enabled = models.BooleanField(default=False)

    def __str__(self):
        return f"SMS preference for {self.user_id or self.phone}"


class SmsLog(models.Model):
    """
    One row per send attempt.
    """

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    STATUS_CHOICES = [
        (SENT, "Sent"),
        (FAILED, "Failed"),
        (SKIPPED, "Skipped"),
    ]

    order = models.ForeignKey(
        "orders.Order",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="sms_logs",
    )
    phone = models.CharField(max_length=20, blank=True, default="")
    message_type = models.CharField(max_length=32, default="order_confirmation")
    message = models.TextField(blank=True, default="")
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    provider_message_id = models.CharField(max_length=64, blank=True, default="")
    error_message = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.message_type} to {self.phone}: {self.status}"
