"""
Management command to validate points ledger parity.

Recomputes every user's totals from PointsTransaction and compares them with
UserPoints and the legacy users.rewards column.

Usage:
    python manage.py points_check
    python manage.py points_check --user <user_id>
    python manage.py points_check --fix
    python manage.py points_check --verbose

Exit codes:
    0 - every user matches the transaction log (clean)
    1 - one or more mismatches remain
"""

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db.models import Q

from loyalty.audit import find_discrepancies, sync_user_points


class Command(BaseCommand):
    help = "Validate points ledger parity by recomputing balances from PointsTransaction"

    def add_arguments(self, parser):
        parser.add_argument(
            "--user",
            type=int,
            help="Check a single user only",
        )
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Rebuild mismatched users' points from their transaction history",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Show every discrepancy as it is found",
        )

    def handle(self, *args, **options):
        User = get_user_model()
        user_id = options.get("user")
        fix = options.get("fix", False)
        verbose = options.get("verbose", False)

        if user_id:
            users = User.objects.filter(pk=user_id)
            if not users.exists():
                raise CommandError(f"User with id {user_id} does not exist")
        else:
            users = User.objects.filter(
                Q(points_account__isnull=False)
                | Q(points_transactions__isnull=False)
                | ~Q(rewards=0)
            ).distinct()

        users = users.order_by("pk")
        if not users.exists():
            self.stdout.write(self.style.WARNING("No users with points found to check"))
            return

        self.stdout.write(f"Checking {users.count()} users...")

        mismatched = []
        fixed = 0
        checked = 0
        for user in users.iterator():
            checked += 1
            discrepancies = find_discrepancies(user)
            if not discrepancies:
                continue

            if verbose:
                for d in discrepancies:
                    self.stdout.write(
                        self.style.ERROR(
                            f"MISMATCH: user {user.pk} ({user.username}) {d['type']} - "
                            f"Expected: {d['expected']}, Actual: {d['actual']}, "
                            f"Difference: {d['difference']}"
                        )
                    )

            if fix:
                sync_user_points(user)
                if not find_discrepancies(user):
                    fixed += 1
                    continue
            mismatched.append((user, discrepancies))

        self.stdout.write("")
        self.stdout.write("=" * 60)
        self.stdout.write(f"Checked: {checked} users")
        if fix:
            self.stdout.write(f"Fixed: {fixed} users")
        self.stdout.write(f"Mismatches: {len(mismatched)}")

        if mismatched:
            self.stdout.write("")
            self.stdout.write(self.style.ERROR("MISMATCHES FOUND:"))
            for user, discrepancies in mismatched:
                kinds = ", ".join(d["type"] for d in discrepancies)
                self.stdout.write(self.style.ERROR(f"  - user {user.pk} ({user.username}): {kinds}"))
            raise CommandError(
                "Points ledger mismatches found. Re-run with --fix to rebuild from transaction history.",
                returncode=1,
            )

        self.stdout.write("")
        self.stdout.write(self.style.SUCCESS("All users match the points ledger (clean)"))
