"""
Referral constants.

Lifecycle:
    Referral:   PENDING → COMPLETED (once, when the referee first subscribes)
    Commission: PENDING → PAID (once, when paid out to the referrer)
"""

import string

from django.db import models
from django.utils.translation import gettext_lazy as _


class ReferralStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    COMPLETED = "completed", _("Completed")


class CommissionStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    PAID = "paid", _("Paid")


class PaymentMethod(models.TextChoices):
    """How a commission was paid out. Only WALLET touches the ledger."""

    WALLET = "wallet", _("Wallet")
    BANK_TRANSFER = "bank_transfer", _("Bank transfer")
    MOBILE_MONEY = "mobile_money", _("Mobile money")


# Referral code shape: up to 4 characters from the display name plus a
# 4-character random base-36 suffix, e.g. "ACME7K2Q".
CODE_PREFIX_LENGTH = 4
CODE_SUFFIX_LENGTH = 4
CODE_ALPHABET = string.digits + string.ascii_uppercase
FALLBACK_CODE_PREFIX = "REF"

# Ledger reference used when a commission is credited to a wallet.
COMMISSION_REFERENCE_PREFIX = "COMM_"

TOP_REFERRERS_LIMIT = 10
