"""
Management command for the hourly subscription tick.

Attempts due automatic renewals (when SUBSCRIPTION_AUTO_RENEW_ENABLED is
set) and then expires active subscriptions whose period has ended,
marking their accounts as pending.

Usage:
    python manage.py expire_subscriptions
    python manage.py expire_subscriptions --dry-run
    python manage.py expire_subscriptions --skip-renewals

Schedule hourly (``0 * * * *``) via Celery Beat (``sync_schedules``) or cron.
"""

from django.conf import settings

from servicemarket.billing.expiration import ExpirationScheduler
from servicemarket.billing.management.commands._base import ScanCommand


class Command(ScanCommand):
    help = "Renew due subscriptions and expire overdue ones."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List affected subscriptions without changing them",
        )
        parser.add_argument(
            "--skip-renewals",
            action="store_true",
            help="Only expire; do not attempt automatic renewals",
        )

    def handle(self, *args, **options):
        scheduler = ExpirationScheduler()
        renew = settings.SUBSCRIPTION_AUTO_RENEW_ENABLED and not options["skip_renewals"]

        if options["dry_run"]:
            if renew:
                self.write_candidates("Would renew", scheduler.renewal_candidates())
            self.write_candidates("Would expire", scheduler.overdue_candidates())
            return

        with self.stop_on_signals():
            if renew:
                renewed = scheduler.renew_due(should_stop=self.should_stop)
                self.write_result("Renewals", renewed)
                if renewed.stopped:
                    return
            expired = scheduler.expire_overdue(should_stop=self.should_stop)
            self.write_result("Expired", expired)
