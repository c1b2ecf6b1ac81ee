"""
Mark active vouchers past their expiry date as expired.

Usage:
    python manage.py expire_vouchers
"""

from django.core.management.base import BaseCommand

from loyalty.vouchers import expire_stale_vouchers


class Command(BaseCommand):
    help = "Flag vouchers whose expiry date has passed"

    def handle(self, *args, **options):
        count = expire_stale_vouchers()
        self.stdout.write(self.style.SUCCESS(f"Expired {count} vouchers"))
