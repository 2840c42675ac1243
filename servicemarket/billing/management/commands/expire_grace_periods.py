"""
Management command to expire past-due subscriptions after the grace period.

A subscription becomes PAST_DUE when its renewal charge fails. If it is
still past due SUBSCRIPTION_GRACE_PERIOD_DAYS after its period ended, it
is expired and the account is marked pending.

Usage:
    python manage.py expire_grace_periods
    python manage.py expire_grace_periods --dry-run
"""

from django.conf import settings

from servicemarket.billing.expiration import ExpirationScheduler
from servicemarket.billing.management.commands._base import ScanCommand


class Command(ScanCommand):
    help = "Expire past-due subscriptions whose grace period has ended."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List subscriptions that would be expired",
        )

    def handle(self, *args, **options):
        scheduler = ExpirationScheduler()

        if options["dry_run"]:
            self.write_candidates(
                f"Past due beyond {settings.SUBSCRIPTION_GRACE_PERIOD_DAYS} day(s)",
                scheduler.past_due_candidates(),
            )
            return

        with self.stop_on_signals():
            result = scheduler.expire_past_due(should_stop=self.should_stop)
        self.write_result("Grace periods expired", result)
