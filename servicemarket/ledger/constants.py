from django.db import models
from django.utils.translation import gettext_lazy as _


class TransactionType(models.TextChoices):
    """
    Direction of a ledger transaction.

    Amounts are stored signed: credits positive, debits negative, so a
    wallet's balance is always the plain sum of its transaction amounts.
    """

    CREDIT = "credit", _("Credit")
    DEBIT = "debit", _("Debit")


# Number of transactions returned by LedgerService.get_summary()
RECENT_TRANSACTIONS_LIMIT = 10
