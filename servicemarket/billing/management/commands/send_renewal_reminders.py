"""
Management command to remind accounts whose subscription ends soon.

Sends a ``subscription_expiring`` notification to every active
subscription ending SUBSCRIPTION_REMINDER_DAYS days from today (7, 3 and 1
by default). Each reminder is recorded, so re-running on the same day
sends nothing new.

Usage:
    python manage.py send_renewal_reminders
    python manage.py send_renewal_reminders --dry-run
"""

from django.conf import settings

from servicemarket.billing.expiration import ExpirationScheduler
from servicemarket.billing.management.commands._base import ScanCommand


class Command(ScanCommand):
    help = "Send renewal reminders for subscriptions ending soon."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List subscriptions that would be reminded",
        )

    def handle(self, *args, **options):
        scheduler = ExpirationScheduler()

        if options["dry_run"]:
            for lead_days in settings.SUBSCRIPTION_REMINDER_DAYS:
                self.write_candidates(
                    f"Ending in {lead_days} day(s)",
                    scheduler.reminder_candidates(lead_days),
                )
            return

        with self.stop_on_signals():
            result = scheduler.send_renewal_reminders(should_stop=self.should_stop)
        self.write_result("Reminders", result)
