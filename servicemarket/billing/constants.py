"""
Billing constants for subscription plans and the subscription lifecycle.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class PlanInterval(models.TextChoices):
    """Billing period of a plan. Periods use calendar arithmetic."""

    MONTHLY = "monthly", _("Monthly")
    YEARLY = "yearly", _("Yearly")


class SubscriptionStatus(models.TextChoices):
    """
    Subscription lifecycle states.

    Typical flow:
        ACTIVE → EXPIRED (period ended, no renewal)
        ACTIVE → PAST_DUE (renewal charge failed) → EXPIRED (after grace period)
        PAST_DUE → ACTIVE (renewal charge succeeded)
        ACTIVE/PAST_DUE → CANCELLED (user cancels; auto-renew off)
        CANCELLED → ACTIVE (reactivated before the period ends)

    EXPIRED is terminal.
    """

    ACTIVE = "active", _("Active")
    PAST_DUE = "past_due", _("Past Due")
    EXPIRED = "expired", _("Expired")
    CANCELLED = "cancelled", _("Cancelled")


# Statuses from which a user may cancel.
CANCELLABLE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE)

# Statuses from which a subscription may be reactivated while its period lasts.
REACTIVATABLE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED)

# Window used by ExpirationScheduler.expiration_stats().
EXPIRATION_STATS_WINDOW_DAYS = 30
EXPIRING_SOON_DAYS = 7

# Lease names for the single-flight scans.
LEASE_EXPIRE_OVERDUE = "billing.expire_overdue"
LEASE_RENEWAL_REMINDERS = "billing.send_renewal_reminders"
LEASE_EXPIRE_PAST_DUE = "billing.expire_past_due"
LEASE_RENEW_DUE = "billing.renew_due"
