"""
Referral models.

Account ──1:1── ReferralCode
Account (referrer) ──1:N── Referral ──N:1── Account (referee)
Referral ──1:N── Commission ──N:1── Subscription

A referee has at most one referral. It is created when the referee redeems
a code and completes on the referee's first subscription, which produces
exactly one Commission. The unique (referral, subscription) constraint backs
up the engine's locked status check so a commission can never be recorded
twice.
"""

from decimal import Decimal
from uuid import uuid4

from django.db import models
from model_utils.models import TimeStampedModel

from servicemarket.referrals.constants import CommissionStatus
from servicemarket.referrals.constants import PaymentMethod
from servicemarket.referrals.constants import ReferralStatus


class ReferralCode(TimeStampedModel):
    """
    The shareable code of a referring account.

    Issued once per account by ReferralRegistry.issue_code().
    """

    account = models.OneToOneField(
        "accounts.Account",
        on_delete=models.CASCADE,
        related_name="referral_code",
    )
    code = models.CharField(max_length=20, unique=True)

    def __str__(self) -> str:
        return self.code


class Referral(TimeStampedModel):
    """
    A referee who signed up with a referrer's code.

    ``commission_rate`` is captured when the referral is created so later
    changes to REFERRAL_COMMISSION_RATE don't affect existing referrals.
    """

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    referrer = models.ForeignKey(
        "accounts.Account",
        on_delete=models.CASCADE,
        related_name="referrals_made",
    )
    referee = models.ForeignKey(
        "accounts.Account",
        on_delete=models.CASCADE,
        related_name="referrals_received",
    )
    code = models.CharField(max_length=20, help_text="The code the referee redeemed.")
    status = models.CharField(
        max_length=20,
        choices=ReferralStatus.choices,
        default=ReferralStatus.PENDING,
    )
    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("10.00"),
        help_text="Commission percentage captured at referral time.",
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="completed_referrals",
        help_text="The subscription that completed this referral.",
    )

    class Meta:
        ordering = ["-created"]
        constraints = [
            models.UniqueConstraint(
                fields=["referrer", "referee"],
                name="referral_referrer_referee_uniq",
            ),
            models.UniqueConstraint(
                fields=["referee"],
                name="referral_referee_uniq",
            ),
            models.CheckConstraint(
                condition=~models.Q(referrer=models.F("referee")),
                name="referral_referrer_not_referee",
            ),
        ]
        indexes = [
            models.Index(fields=["referee", "status"], name="referral_referee_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.referrer} → {self.referee} ({self.status})"


class Commission(TimeStampedModel):
    """
    Money owed to a referrer for a completed referral.

    ``commission_amount`` = ``subscription_amount`` × ``commission_rate`` / 100,
    rounded half-up to the cent.
    """

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    referral = models.ForeignKey(
        Referral,
        on_delete=models.PROTECT,
        related_name="commissions",
    )
    referrer = models.ForeignKey(
        "accounts.Account",
        on_delete=models.PROTECT,
        related_name="commissions_earned",
    )
    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.PROTECT,
        related_name="commissions",
    )
    subscription_amount = models.DecimalField(max_digits=12, decimal_places=2)
    commission_rate = models.DecimalField(max_digits=5, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(
        max_length=20,
        choices=CommissionStatus.choices,
        default=CommissionStatus.PENDING,
    )
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        blank=True,
    )
    payment_reference = models.CharField(
        max_length=100,
        blank=True,
        help_text="Ledger reference (COMM_<id>) or the external transfer reference.",
    )

    class Meta:
        ordering = ["-created"]
        constraints = [
            models.UniqueConstraint(
                fields=["referral", "subscription"],
                name="commission_referral_subscription_uniq",
            ),
            models.CheckConstraint(
                condition=models.Q(commission_amount__gte=0),
                name="commission_amount_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["status"], name="commission_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.commission_amount} to {self.referrer} ({self.status})"

    @property
    def is_paid(self) -> bool:
        return self.status == CommissionStatus.PAID
