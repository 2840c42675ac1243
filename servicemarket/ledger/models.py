"""
Ledger models: one Wallet per account and its append-only transaction log.

Invariant maintained by servicemarket.ledger.services.LedgerService:

    wallet.balance == latest_transaction.balance_after == sum(transaction.amount)

Wallet ──1:N── LedgerTransaction (sequence 1, 2, 3, ... per wallet)

Transactions are never updated or deleted; corrections are new
transactions. The (wallet, sequence) unique constraint makes a lost
serialization fail loudly instead of forking the history.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from django.conf import settings
from django.db import models
from model_utils.models import TimeStampedModel

from servicemarket.core.exceptions import InvalidStateError
from servicemarket.ledger.constants import TransactionType
from servicemarket.ledger.metadata import parse_ledger_metadata


def default_currency() -> str:
    return settings.LEDGER_DEFAULT_CURRENCY


class Wallet(TimeStampedModel):
    """
    Balance-bearing account attached to a marketplace Account.

    Created lazily on the first credit. Only LedgerService writes
    ``balance``, always together with a new LedgerTransaction.
    """

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    account = models.OneToOneField(
        "accounts.Account",
        on_delete=models.PROTECT,
        related_name="wallet",
    )
    balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    currency = models.CharField(
        max_length=3,
        default=default_currency,
        help_text="ISO 4217 currency code.",
    )

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance__gte=0),
                name="wallet_balance_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.account} ({self.balance} {self.currency})"


class LedgerTransaction(models.Model):
    """
    One immutable movement of money in or out of a wallet.

    ``amount`` is signed (debits negative) and ``balance_after`` is the
    wallet balance immediately after this transaction was applied.
    """

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    wallet = models.ForeignKey(
        Wallet,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    sequence = models.PositiveIntegerField(
        help_text="1-based position in the wallet's history.",
    )
    type = models.CharField(max_length=10, choices=TransactionType.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)
    reference = models.CharField(
        max_length=100,
        blank=True,
        help_text="Idempotency reference, unique per wallet when set (e.g. COMM_<id>).",
    )
    description = models.CharField(max_length=255, blank=True)
    # Use the typed_metadata property for type-safe access; see metadata.py.
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["wallet", "sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["wallet", "sequence"],
                name="ledger_txn_wallet_sequence_uniq",
            ),
            models.UniqueConstraint(
                fields=["wallet", "reference"],
                condition=~models.Q(reference=""),
                name="ledger_txn_wallet_reference_uniq",
            ),
        ]
        indexes = [
            models.Index(fields=["reference"], name="ledger_txn_reference_idx"),
        ]

    def __str__(self) -> str:
        return f"#{self.sequence} {self.type} {self.amount} ({self.reference or '-'})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise InvalidStateError(
                detail="Ledger transactions are append-only.",
                code="ledger_append_only",
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise InvalidStateError(
            detail="Ledger transactions cannot be deleted.",
            code="ledger_append_only",
        )

    @property
    def typed_metadata(self):
        """Return the metadata bag as its typed Pydantic model."""
        return parse_ledger_metadata(self.metadata)
