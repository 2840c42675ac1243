from __future__ import annotations

from uuid import uuid4

from django.db import models
from django.utils.translation import gettext_lazy as _

from servicemarket.accounts.models import Account


class Notification(models.Model):
    """
    In-app notification for an account.

    Written by DatabaseNotificationSender. Push, email and SMS delivery are
    handled by whatever consumes these rows; ``payload`` carries the ids and
    values a client needs to deep-link (subscription id, plan name, dates).
    """

    class Type(models.TextChoices):
        SUBSCRIPTION_EXPIRED = "subscription_expired", _("Subscription expired")
        SUBSCRIPTION_EXPIRING = "subscription_expiring", _("Subscription expiring")
        SUBSCRIPTION_GRACE_PERIOD_EXPIRED = (
            "subscription_grace_period_expired",
            _("Grace period expired"),
        )
        SUBSCRIPTION_RENEWED = "subscription_renewed", _("Subscription renewed")
        SUBSCRIPTION_RENEWAL_FAILED = (
            "subscription_renewal_failed",
            _("Subscription renewal failed"),
        )
        COMMISSION_PAID = "commission_paid", _("Commission paid")
        SYSTEM_ALERT = "system_alert", _("System alert")

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    account = models.ForeignKey(
        Account,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    type = models.CharField(max_length=64, choices=Type.choices)
    title = models.CharField(max_length=255)
    body = models.TextField(blank=True)
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Notification {self.type} for {self.account}"

    @property
    def is_unread(self) -> bool:
        return self.read_at is None
