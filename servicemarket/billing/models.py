"""
Billing models for Service Market subscriptions.

Key design decisions:
- Plan is a lookup table keyed by slug; its feature limits gate listings
- An account may have many Subscription rows over time; the most recent
  ACTIVE one is authoritative
- Subscription.price snapshots the plan price so later price changes never
  alter an existing period (or the commission earned on it)
- SubscriptionReminder records each reminder actually sent so the daily
  reminder scan can be re-run safely

Relationship: Account ──1:N── Subscription ──N:1── Plan
"""

from __future__ import annotations

from uuid import uuid4

from django.db import models
from model_utils.models import TimeStampedModel

from servicemarket.billing.constants import PlanInterval
from servicemarket.billing.constants import SubscriptionStatus
from servicemarket.billing.metadata import parse_subscription_metadata


class Plan(models.Model):
    """
    Lookup table for subscription plans.

    Plans referenced by a subscription cannot be deleted. Set ``is_active``
    to False to stop offering a plan; existing subscriptions keep it.

    Populated via ``python manage.py seed_plans``.
    """

    slug = models.SlugField(
        max_length=50,
        primary_key=True,
        help_text="Unique plan identifier, also used as PK.",
    )
    name = models.CharField(max_length=100, help_text="Display name for the plan.")
    description = models.TextField(blank=True)
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Price per billing interval.",
    )
    interval = models.CharField(
        max_length=10,
        choices=PlanInterval.choices,
        default=PlanInterval.MONTHLY,
    )

    # Feature limits
    max_photos = models.PositiveIntegerField(default=5)
    max_videos = models.PositiveIntegerField(default=0)
    video_max_duration_seconds = models.PositiveIntegerField(default=0)
    top_listing_days = models.PositiveIntegerField(
        default=0,
        help_text="Days the provider is featured at the top of listings.",
    )
    priority = models.PositiveSmallIntegerField(
        default=1,
        help_text="Listing priority; higher ranks first.",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Inactive plans cannot be subscribed to.",
    )
    display_order = models.IntegerField(default=0)

    class Meta:
        ordering = ["display_order", "price"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name="plan_price_positive",
            ),
        ]

    def __str__(self) -> str:
        return self.name


class Subscription(TimeStampedModel):
    """
    One billing period chain of an account on a plan.

    Status transitions are applied by SubscriptionService and
    ExpirationScheduler, always under a row lock with a status re-check.
    """

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    account = models.ForeignKey(
        "accounts.Account",
        on_delete=models.CASCADE,
        related_name="subscriptions",
    )
    plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,  # Never delete a plan with subscriptions
        related_name="subscriptions",
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.ACTIVE,
    )
    current_period_start = models.DateTimeField()
    current_period_end = models.DateTimeField()
    auto_renew = models.BooleanField(default=True)
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Plan price captured at creation or last renewal.",
    )
    metadata = models.JSONField(default=dict, blank=True)

    renewal_attempted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last automatic renewal attempt in the current cycle.",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(current_period_end__gt=models.F("current_period_start")),
                name="subscription_period_end_after_start",
            ),
        ]
        indexes = [
            models.Index(
                fields=["status", "current_period_end"],
                name="subscription_status_end_idx",
            ),
            models.Index(
                fields=["account", "status"],
                name="subscription_account_status_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.account} - {self.plan} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    @property
    def typed_metadata(self):
        return parse_subscription_metadata(self.metadata)


class SubscriptionReminder(TimeStampedModel):
    """
    A renewal reminder that was sent.

    Unique per (subscription, lead_days, period_end): a renewed subscription
    gets fresh reminders for its new period.
    """

    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.CASCADE,
        related_name="reminders",
    )
    lead_days = models.PositiveSmallIntegerField()
    period_end = models.DateTimeField()

    class Meta:
        ordering = ["-created"]
        constraints = [
            models.UniqueConstraint(
                fields=["subscription", "lead_days", "period_end"],
                name="subscription_reminder_uniq",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.subscription_id} reminder ({self.lead_days}d)"
