from django.db import models
from django.utils.translation import gettext_lazy as _


class PaymentStatus(models.TextChoices):
    """
    Feature-gating flag on an account.

    PAID while the account has an active subscription. The expiration
    scans flip it back to PENDING when the subscription lapses.
    """

    PAID = "paid", _("Paid")
    PENDING = "pending", _("Pending")
