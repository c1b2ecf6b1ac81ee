# accounts/models.py
from django.contrib.auth.models import AbstractUser
from django.db import models

from common.roles import UserRole


class User(AbstractUser):
    """
    Customer or staff account.

    ``id`` is the legacy integer key every other table points at; Supabase
    signups are linked through ``supabase_user_id``. ``rewards`` mirrors the
    current points balance for older clients and is only written by the
    points ledger.
    """

    supabase_user_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    role = models.CharField(max_length=20, choices=UserRole.choices, default=UserRole.CUSTOMER)
    phone = models.CharField(max_length=32, blank=True, default="")
    address = models.CharField(max_length=255, blank=True, default="")
    city = models.CharField(max_length=100, blank=True, default="")
    state = models.CharField(max_length=50, blank=True, default="")
    zip_code = models.CharField(max_length=20, blank=True, default="")
    marketing_opt_in = models.BooleanField(default=False)
    rewards = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=["role"], name="user_role_idx")]

    def __str__(self):
        return self.get_full_name() or self.username
