"""
Management command to run automatic renewals on demand.

With SUBSCRIPTION_AUTO_RENEW_ENABLED set, renewals run inside the hourly
``expire_subscriptions`` tick. This command runs just the renewal scan, or
charges a single subscription with --subscription (which also retries a
past-due one).

Usage:
    python manage.py renew_subscriptions
    python manage.py renew_subscriptions --dry-run
    python manage.py renew_subscriptions --subscription=<uuid>
"""

from django.core.management.base import CommandError

from servicemarket.billing.expiration import ExpirationScheduler
from servicemarket.billing.management.commands._base import ScanCommand
from servicemarket.core.exceptions import ServiceError


class Command(ScanCommand):
    help = "Charge subscriptions due for automatic renewal."

    def add_arguments(self, parser):
        parser.add_argument(
            "--subscription",
            type=str,
            help="Renew only this subscription id (active or past due)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List subscriptions that would be charged",
        )

    def handle(self, *args, **options):
        scheduler = ExpirationScheduler()

        if options["subscription"]:
            if options["dry_run"]:
                self.stdout.write(
                    self.style.WARNING(
                        f"[DRY RUN] Would renew subscription {options['subscription']}",
                    ),
                )
                return
            try:
                subscription = scheduler.renew_subscription(options["subscription"])
            except ServiceError as exc:
                raise CommandError(f"{exc.detail} ({exc.code})") from exc
            self.stdout.write(
                f"Subscription {subscription.pk} is {subscription.status} until "
                f"{subscription.current_period_end.isoformat()}",
            )
            return

        if options["dry_run"]:
            self.write_candidates("Would renew", scheduler.renewal_candidates())
            return

        with self.stop_on_signals():
            result = scheduler.renew_due(should_stop=self.should_stop)
        self.write_result("Renewals", result)
