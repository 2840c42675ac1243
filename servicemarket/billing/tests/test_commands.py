"""
Tests for the billing management commands.
"""

from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from servicemarket.accounts.constants import PaymentStatus
from servicemarket.billing.constants import SubscriptionStatus
from servicemarket.billing.management.commands.seed_plans import PLAN_CONFIG
from servicemarket.billing.models import Plan
from servicemarket.billing.models import Subscription
from servicemarket.billing.models import SubscriptionReminder
from servicemarket.billing.services import SubscriptionService
from servicemarket.billing.tests.factories import SubscriptionFactory
from servicemarket.notifications.models import Notification


@pytest.mark.django_db
class TestSeedPlans:
    def test_creates_the_three_plans(self):
        out = StringIO()

        call_command("seed_plans", stdout=out)

        assert set(Plan.objects.values_list("slug", flat=True)) == set(PLAN_CONFIG)
        assert Plan.objects.get(slug="professional-plan").price == Decimal("15000.00")
        assert "3 active plan(s)" in out.getvalue()

    def test_existing_plans_are_left_alone_without_force(self):
        call_command("seed_plans", stdout=StringIO())
        Plan.objects.filter(slug="basic-plan").update(price=Decimal("4500.00"))
        out = StringIO()

        call_command("seed_plans", stdout=out)

        assert Plan.objects.get(slug="basic-plan").price == Decimal("4500.00")
        assert "Exists: Basic Plan (use --force to update)" in out.getvalue()

    def test_force_updates_existing_plans(self):
        call_command("seed_plans", stdout=StringIO())
        Plan.objects.filter(slug="basic-plan").update(price=Decimal("4500.00"))

        call_command("seed_plans", "--force", stdout=StringIO())

        assert Plan.objects.get(slug="basic-plan").price == Decimal("5000.00")


@pytest.mark.django_db
class TestExpireSubscriptions:
    def test_expires_overdue_subscriptions(self):
        subscription = SubscriptionFactory(
            auto_renew=False,
            current_period_end=timezone.now() - timedelta(hours=1),
            account__payment_status=PaymentStatus.PAID,
        )
        out = StringIO()

        call_command("expire_subscriptions", stdout=out)

        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.EXPIRED
        subscription.account.refresh_from_db()
        assert subscription.account.payment_status == PaymentStatus.PENDING
        assert "Expired: 1 processed, 0 skipped, 0 failed" in out.getvalue()

    def test_subscription_from_service_expires_with_default_settings(self, account, pro_plan):
        subscription = SubscriptionService().create_subscription(account, pro_plan)
        Subscription.objects.filter(pk=subscription.pk).update(
            current_period_end=timezone.now() - timedelta(days=1),
        )
        out = StringIO()

        call_command("expire_subscriptions", stdout=out)

        subscription.refresh_from_db()
        assert subscription.auto_renew is True
        assert subscription.status == SubscriptionStatus.EXPIRED
        account.refresh_from_db()
        assert account.payment_status == PaymentStatus.PENDING
        assert "Renewals" not in out.getvalue()

    def test_attempts_renewal_before_expiring_when_enabled(self, settings):
        settings.SUBSCRIPTION_AUTO_RENEW_ENABLED = True
        subscription = SubscriptionFactory(
            current_period_end=timezone.now() - timedelta(hours=1),
        )
        out = StringIO()

        call_command("expire_subscriptions", stdout=out)

        # The default processor declines, so the subscription enters its grace period.
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.PAST_DUE
        assert "Renewals: 1 processed" in out.getvalue()

    def test_skip_renewals(self, settings):
        settings.SUBSCRIPTION_AUTO_RENEW_ENABLED = True
        subscription = SubscriptionFactory(
            current_period_end=timezone.now() - timedelta(hours=1),
        )
        out = StringIO()

        call_command("expire_subscriptions", "--skip-renewals", stdout=out)

        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.EXPIRED
        assert "Renewals" not in out.getvalue()

    def test_dry_run_changes_nothing(self):
        subscription = SubscriptionFactory(
            auto_renew=False,
            current_period_end=timezone.now() - timedelta(hours=1),
        )
        out = StringIO()

        call_command("expire_subscriptions", "--dry-run", stdout=out)

        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert str(subscription.pk) in out.getvalue()
        assert "[DRY RUN] Would expire: 1 subscription(s)" in out.getvalue()


@pytest.mark.django_db
class TestSendRenewalReminders:
    def test_sends_reminders(self):
        subscription = SubscriptionFactory(
            current_period_end=timezone.now() + timedelta(days=3),
        )
        out = StringIO()

        call_command("send_renewal_reminders", stdout=out)

        assert Notification.objects.filter(
            account=subscription.account,
            type=Notification.Type.SUBSCRIPTION_EXPIRING,
        ).exists()
        assert SubscriptionReminder.objects.filter(
            subscription=subscription,
            lead_days=3,
        ).exists()
        assert "Reminders: 1 processed" in out.getvalue()

    def test_dry_run_lists_each_lead_day(self):
        SubscriptionFactory(current_period_end=timezone.now() + timedelta(days=7))
        out = StringIO()

        call_command("send_renewal_reminders", "--dry-run", stdout=out)

        output = out.getvalue()
        assert "[DRY RUN] Ending in 7 day(s): 1 subscription(s)" in output
        assert "[DRY RUN] Ending in 1 day(s): 0 subscription(s)" in output
        assert not Notification.objects.exists()


@pytest.mark.django_db
class TestExpireGracePeriods:
    def test_expires_lapsed_past_due_subscriptions(self):
        subscription = SubscriptionFactory(
            status=SubscriptionStatus.PAST_DUE,
            current_period_end=timezone.now() - timedelta(days=5),
        )
        out = StringIO()

        call_command("expire_grace_periods", stdout=out)

        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.EXPIRED
        assert "Grace periods expired: 1 processed" in out.getvalue()


@pytest.mark.django_db
class TestRenewSubscriptions:
    def test_single_subscription_reports_outcome(self):
        subscription = SubscriptionFactory(status=SubscriptionStatus.PAST_DUE)
        out = StringIO()

        call_command("renew_subscriptions", f"--subscription={subscription.pk}", stdout=out)

        assert f"Subscription {subscription.pk} is past_due" in out.getvalue()

    def test_single_expired_subscription_raises_command_error(self):
        subscription = SubscriptionFactory(status=SubscriptionStatus.EXPIRED)

        with pytest.raises(CommandError, match="subscription_not_renewable"):
            call_command(
                "renew_subscriptions",
                f"--subscription={subscription.pk}",
                stdout=StringIO(),
            )


@pytest.mark.django_db
class TestSubscriptionStats:
    def test_prints_breakdown(self):
        SubscriptionFactory(current_period_end=timezone.now() + timedelta(days=2))
        SubscriptionFactory(
            status=SubscriptionStatus.EXPIRED,
            current_period_end=timezone.now() - timedelta(days=2),
        )
        out = StringIO()

        call_command("subscription_stats", stdout=out)

        output = out.getvalue()
        assert "active: 1" in output
        assert "expired: 1" in output
        assert "Active, ending in the next 7 days: 1" in output
        assert "Grace period: 3 day(s)" in output
