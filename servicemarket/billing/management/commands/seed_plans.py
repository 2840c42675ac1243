"""
Management command to seed the subscription plans.

Creates the Basic, Professional and Premium monthly plans with their
listing feature limits.

Usage:
    python manage.py seed_plans            # Create missing plans
    python manage.py seed_plans --force    # Also update existing plans
"""

from decimal import Decimal

from django.core.management.base import BaseCommand

from servicemarket.billing.constants import PlanInterval
from servicemarket.billing.models import Plan

PLAN_CONFIG = {
    "basic-plan": {
        "name": "Basic Plan",
        "description": "Perfect for getting started.",
        "price": Decimal("5000.00"),
        "interval": PlanInterval.MONTHLY,
        "max_photos": 5,
        "max_videos": 0,
        "video_max_duration_seconds": 0,
        "top_listing_days": 14,
        "priority": 1,
        "display_order": 1,
    },
    "professional-plan": {
        "name": "Professional Plan",
        "description": "For growing businesses.",
        "price": Decimal("15000.00"),
        "interval": PlanInterval.MONTHLY,
        "max_photos": 10,
        "max_videos": 1,
        "video_max_duration_seconds": 90,
        "top_listing_days": 60,
        "priority": 2,
        "display_order": 2,
    },
    "premium-plan": {
        "name": "Premium Plan",
        "description": "For established businesses.",
        "price": Decimal("30000.00"),
        "interval": PlanInterval.MONTHLY,
        "max_photos": 20,
        "max_videos": 3,
        "video_max_duration_seconds": 180,
        "top_listing_days": 90,
        "priority": 3,
        "display_order": 3,
    },
}


class Command(BaseCommand):
    help = "Seed subscription plans"

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Update existing plans with the latest configuration",
        )

    def handle(self, *args, **options):
        for slug, config in PLAN_CONFIG.items():
            plan, created = Plan.objects.get_or_create(slug=slug, defaults=config)

            if created:
                self.stdout.write(self.style.SUCCESS(f"  Created: {plan.name}"))
            elif options["force"]:
                for field, value in config.items():
                    setattr(plan, field, value)
                plan.save()
                self.stdout.write(self.style.SUCCESS(f"  Updated: {plan.name}"))
            else:
                self.stdout.write(f"  Exists: {plan.name} (use --force to update)")

        self.stdout.write(f"\n{Plan.objects.filter(is_active=True).count()} active plan(s)")
