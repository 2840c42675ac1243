"""
Management command to print subscription expiration statistics.

Usage:
    python manage.py subscription_stats
"""

from django.core.management.base import BaseCommand

from servicemarket.billing.expiration import ExpirationScheduler


class Command(BaseCommand):
    help = "Show subscription expiration statistics."

    def handle(self, *args, **options):
        stats = ExpirationScheduler().expiration_stats()

        self.stdout.write("Subscriptions ending within 30 days, by status:")
        if not stats.status_breakdown:
            self.stdout.write("  (none)")
        for status, count in stats.status_breakdown.items():
            self.stdout.write(f"  {status}: {count}")

        self.stdout.write(f"Active, ending in the next 7 days: {stats.upcoming_expirations}")
        self.stdout.write(f"Expired: {stats.expired_count}")
        self.stdout.write(f"Grace period: {stats.grace_period_days} day(s)")
