"""
Account model for Service Market.

An Account wraps a Django user with the marketplace-facing state the
billing and referral subsystems need:

    User ──1:1── Account ──1:1── Wallet
                   │
                   ├──N:1── Account (referred_by)
                   └──1:N── Subscription

The referral counters are denormalized totals maintained by the commission
engine with F() expressions; the authoritative records are the Referral and
Commission rows.
"""

from decimal import Decimal
from uuid import uuid4

from django.conf import settings
from django.db import models
from model_utils.models import TimeStampedModel

from servicemarket.accounts.constants import PaymentStatus


class Account(TimeStampedModel):
    """
    A provider or customer account on the marketplace.

    Usage:
        account = user.account
        if account.payment_status == PaymentStatus.PAID:
            ...  # premium features enabled
    """

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="account",
    )
    display_name = models.CharField(
        max_length=255,
        help_text="Business or display name. Seeds the referral code prefix.",
    )

    referred_by = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="referred_accounts",
        help_text="Account whose referral code this account redeemed.",
    )
    total_referrals = models.PositiveIntegerField(
        default=0,
        help_text="Number of completed referrals credited to this account.",
    )
    total_commissions_earned = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Sum of commissions generated by this account's referrals.",
    )

    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )

    class Meta:
        ordering = ["display_name"]
        indexes = [
            models.Index(fields=["payment_status"], name="account_payment_status_idx"),
        ]

    def __str__(self) -> str:
        return self.display_name

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID
