"""
Award points for fulfilled orders that never earned any.

Usage:
    python manage.py backfill_order_points
    python manage.py backfill_order_points --dry-run
"""

from django.core.management.base import BaseCommand

from loyalty.models import PointsTransaction
from loyalty.services import award_points_for_order, points_for_order
from orders.models import Order


class Command(BaseCommand):
    help = "Credit points for fulfilled orders without an earned transaction"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the orders that would be credited without writing anything",
        )

    def handle(self, *args, **options):
        dry_run = options.get("dry_run", False)
        credited = PointsTransaction.objects.filter(
            type=PointsTransaction.EARNED, order__isnull=False
        ).values("order_id")
        orders = (
            Order.objects.filter(status__in=Order.FULFILLED_STATUSES, user__isnull=False)
            .exclude(pk__in=credited)
            .select_related("user")
            .order_by("pk")
        )

        count = 0
        for order in orders.iterator():
            count += 1
            points = points_for_order(order.total)
            if dry_run:
                self.stdout.write(f"Order #{order.pk} (user {order.user_id}): {points} points")
                continue
            award_points_for_order(order)

        verb = "Would credit" if dry_run else "Credited"
        self.stdout.write(self.style.SUCCESS(f"{verb} {count} orders"))
