"""
Ledger service: the only writer of wallet balances.

Every credit or debit is one database transaction that

    1. locks the wallet row (``select_for_update``), creating it on first credit,
    2. checks the locked balance against the latest transaction and computes
       the new balance from it,
    3. saves the wallet,
    4. appends a LedgerTransaction with the next sequence and ``balance_after``.

Concurrent operations on the same wallet therefore serialize on the row
lock, and ``wallet.balance`` always equals the sum of its transaction
amounts. A caller that needs the ledger write to be part of a larger unit
(e.g. paying a commission) calls these methods inside its own
``transaction.atomic()`` block; the inner block becomes a savepoint and a
failure anywhere rolls the whole unit back.

Usage:
    service = LedgerService()
    entry = service.credit(account, Decimal("1000.00"), reference="COMM_42")
    entry.balance          # new wallet balance
    entry.transaction.sequence
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from typing import Any
from uuid import UUID
from uuid import uuid4

from django.conf import settings
from django.db import transaction
from django.db.models import Max
from django.db.models import Q
from django.db.models import Sum
from pydantic import ValidationError

from servicemarket.core.exceptions import InsufficientFundsError
from servicemarket.core.exceptions import InvalidAmountError
from servicemarket.core.exceptions import InvalidRequestError
from servicemarket.core.exceptions import InvalidStateError
from servicemarket.core.exceptions import NotFoundError
from servicemarket.core.money import ZERO
from servicemarket.core.money import quantize_money
from servicemarket.core.money import to_decimal
from servicemarket.ledger.constants import RECENT_TRANSACTIONS_LIMIT
from servicemarket.ledger.constants import TransactionType
from servicemarket.ledger.metadata import BaseLedgerMetadata
from servicemarket.ledger.metadata import TransferMetadata
from servicemarket.ledger.metadata import WithdrawalMetadata
from servicemarket.ledger.metadata import dump_ledger_metadata
from servicemarket.ledger.models import LedgerTransaction
from servicemarket.ledger.models import Wallet

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from servicemarket.accounts.models import Account

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    """Result of a credit or debit."""

    transaction: LedgerTransaction
    balance: Decimal


@dataclass(frozen=True)
class TransferResult:
    debit: LedgerEntry
    credit: LedgerEntry


def _transfer_description(prefix: str, counterparty: Account, description: str) -> str:
    text = f"{prefix} {counterparty}"
    return f"{text}: {description}" if description else text


@dataclass
class LedgerSummary:
    balance: Decimal
    currency: str
    total_credits: Decimal
    total_debits: Decimal
    recent_transactions: list[LedgerTransaction] = field(default_factory=list)

    @property
    def net(self) -> Decimal:
        return self.total_credits - self.total_debits


@dataclass
class LedgerVerification:
    """Outcome of checking one wallet against its history."""

    wallet: Wallet
    balance: Decimal
    history_total: Decimal
    latest_balance_after: Decimal | None
    transaction_count: int
    max_sequence: int

    @property
    def problems(self) -> list[str]:
        problems = []
        if self.balance != self.history_total:
            problems.append(
                f"balance {self.balance} != sum of amounts {self.history_total}"
            )
        latest = self.latest_balance_after
        if latest is None:
            latest = ZERO
        if self.balance != latest:
            problems.append(f"balance {self.balance} != latest balance_after {latest}")
        if self.max_sequence != self.transaction_count:
            problems.append(
                f"sequence gap: {self.transaction_count} transactions, "
                f"max sequence {self.max_sequence}"
            )
        return problems

    @property
    def ok(self) -> bool:
        return not self.problems


class LedgerService:
    """
    Credits, debits and read models for account wallets.

    Usage:
        service = LedgerService()
        service.credit(account, "250.00", reference="TOPUP-9", description="Top up")
        service.debit(account, "100.00", reference="PAYOUT-3")
        service.transfer(account, other_account, "50.00", reference="TRF-7")
        service.withdraw(account, "25.00", destination="GTBank 0123456789")
        summary = service.get_summary(account)
    """

    def credit(
        self,
        account: Account,
        amount: Decimal | int | str,
        reference: str = "",
        description: str = "",
        metadata: BaseLedgerMetadata | dict[str, Any] | None = None,
    ) -> LedgerEntry:
        """
        Add ``amount`` to the account's wallet, creating the wallet if needed.

        Raises:
            InvalidAmountError: If amount is not a positive number.
            InvalidStateError: If ``reference`` was already used on this wallet.
        """
        amount = self._validate_amount(amount)
        stored_metadata = self._validate_metadata(metadata)

        with transaction.atomic():
            wallet, _created = Wallet.objects.select_for_update().get_or_create(
                account=account,
                defaults={"currency": settings.LEDGER_DEFAULT_CURRENCY},
            )
            return self._append(
                wallet,
                TransactionType.CREDIT,
                amount,
                reference=reference,
                description=description,
                metadata=stored_metadata,
            )

    def debit(
        self,
        account: Account,
        amount: Decimal | int | str,
        reference: str = "",
        description: str = "",
        metadata: BaseLedgerMetadata | dict[str, Any] | None = None,
    ) -> LedgerEntry:
        """
        Remove ``amount`` from the account's wallet.

        Raises:
            InvalidAmountError: If amount is not a positive number.
            NotFoundError: If the account has no wallet.
            InsufficientFundsError: If the balance is below ``amount``.
            InvalidStateError: If ``reference`` was already used on this wallet.
        """
        amount = self._validate_amount(amount)
        stored_metadata = self._validate_metadata(metadata)

        with transaction.atomic():
            try:
                wallet = Wallet.objects.select_for_update().get(account=account)
            except Wallet.DoesNotExist:
                raise NotFoundError(
                    detail=f"Account {account.pk} has no wallet.",
                    code="wallet_not_found",
                ) from None

            self._check_funds(wallet, amount)
            return self._append(
                wallet,
                TransactionType.DEBIT,
                amount,
                reference=reference,
                description=description,
                metadata=stored_metadata,
            )

    def transfer(
        self,
        from_account: Account,
        to_account: Account,
        amount: Decimal | int | str,
        reference: str,
        description: str = "",
    ) -> TransferResult:
        """
        Move ``amount`` from one account's wallet to another's.

        The debit and the credit commit together. Both wallets are locked in
        primary-key order, so two opposite transfers between the same pair
        cannot deadlock. The receiving wallet is created if needed.

        Raises:
            InvalidAmountError: If amount is not a positive number.
            InvalidRequestError: If both accounts are the same, the reference
                is empty, or the wallets hold different currencies.
            NotFoundError: If the sending account has no wallet.
            InsufficientFundsError: If the sender's balance is below ``amount``.
            InvalidStateError: If ``reference`` was already used on either wallet.
        """
        amount = self._validate_amount(amount)
        if from_account.pk == to_account.pk:
            raise InvalidRequestError(
                detail="Cannot transfer to the same account.",
                code="same_account_transfer",
            )
        if not reference:
            raise InvalidRequestError(
                detail="A transfer needs a reference.",
                code="missing_reference",
            )

        with transaction.atomic():
            sender_pk = (
                Wallet.objects.filter(account=from_account)
                .values_list("pk", flat=True)
                .first()
            )
            if sender_pk is None:
                raise NotFoundError(
                    detail=f"Account {from_account.pk} has no wallet.",
                    code="wallet_not_found",
                )
            recipient_wallet, _created = Wallet.objects.get_or_create(
                account=to_account,
                defaults={"currency": settings.LEDGER_DEFAULT_CURRENCY},
            )
            locked = self._lock_wallets([sender_pk, recipient_wallet.pk])
            sender = locked[sender_pk]
            recipient = locked[recipient_wallet.pk]

            if sender.currency != recipient.currency:
                raise InvalidRequestError(
                    detail=(
                        f"Cannot transfer between {sender.currency} and "
                        f"{recipient.currency} wallets."
                    ),
                    code="currency_mismatch",
                )
            self._check_funds(sender, amount)

            debit = self._append(
                sender,
                TransactionType.DEBIT,
                amount,
                reference=reference,
                description=_transfer_description("Transfer to", to_account, description),
                metadata=dump_ledger_metadata(
                    TransferMetadata(
                        direction="outgoing",
                        counterparty_account_id=str(to_account.pk),
                    ),
                ),
            )
            credit = self._append(
                recipient,
                TransactionType.CREDIT,
                amount,
                reference=reference,
                description=_transfer_description("Transfer from", from_account, description),
                metadata=dump_ledger_metadata(
                    TransferMetadata(
                        direction="incoming",
                        counterparty_account_id=str(from_account.pk),
                    ),
                ),
            )
        return TransferResult(debit=debit, credit=credit)

    def withdraw(
        self,
        account: Account,
        amount: Decimal | int | str,
        destination: str,
        external_reference: str = "",
        reference: str = "",
    ) -> LedgerEntry:
        """
        Debit ``amount`` for a payout to an external destination.

        Only the wallet side is recorded here. Sending the money is up to the
        caller, which can pass the payout provider's id as
        ``external_reference``. ``reference`` defaults to a generated
        ``WITHDRAWAL_<id>``.

        Raises:
            InvalidRequestError: If ``destination`` is empty.
            Anything ``debit`` raises.
        """
        if not destination:
            raise InvalidRequestError(
                detail="A withdrawal needs a destination.",
                code="missing_destination",
            )
        return self.debit(
            account,
            amount,
            reference=reference or f"WITHDRAWAL_{uuid4().hex[:12].upper()}",
            description=f"Withdrawal to {destination}",
            metadata=WithdrawalMetadata(
                destination=destination,
                external_reference=external_reference,
            ),
        )

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def get_wallet(self, account: Account) -> Wallet | None:
        return Wallet.objects.filter(account=account).first()

    def get_balance(self, account: Account) -> Decimal:
        """Current balance; zero for accounts that have never been credited."""
        balance = (
            Wallet.objects.filter(account=account)
            .values_list("balance", flat=True)
            .first()
        )
        return balance if balance is not None else ZERO

    def get_summary(
        self,
        account: Account,
        recent: int = RECENT_TRANSACTIONS_LIMIT,
    ) -> LedgerSummary:
        """Balance, totals and the most recent transactions for a wallet."""
        wallet = self.get_wallet(account)
        if wallet is None:
            return LedgerSummary(
                balance=ZERO,
                currency=settings.LEDGER_DEFAULT_CURRENCY,
                total_credits=ZERO,
                total_debits=ZERO,
            )

        totals = wallet.transactions.aggregate(
            credits=Sum("amount", filter=Q(type=TransactionType.CREDIT)),
            debits=Sum("amount", filter=Q(type=TransactionType.DEBIT)),
        )
        return LedgerSummary(
            balance=wallet.balance,
            currency=wallet.currency,
            total_credits=totals["credits"] or ZERO,
            # Debits are stored negative; report the magnitude.
            total_debits=-(totals["debits"] or ZERO),
            recent_transactions=list(wallet.transactions.order_by("-sequence")[:recent]),
        )

    def list_transactions(
        self,
        account: Account,
        type: str | None = None,  # noqa: A002
        since: datetime | None = None,
        search: str | None = None,
    ) -> QuerySet[LedgerTransaction]:
        """Newest-first transaction history, optionally filtered."""
        qs = LedgerTransaction.objects.filter(wallet__account=account)
        if type:
            qs = qs.filter(type=TransactionType(type))
        if since:
            qs = qs.filter(created_at__gte=since)
        if search:
            qs = qs.filter(Q(description__icontains=search) | Q(reference__icontains=search))
        return qs.order_by("-sequence")

    def verify(self, wallet: Wallet) -> LedgerVerification:
        """Compare a wallet's stored balance with its transaction history."""
        wallet.refresh_from_db(fields=["balance"])
        stats = wallet.transactions.aggregate(
            total=Sum("amount"),
            max_sequence=Max("sequence"),
        )
        latest = wallet.transactions.order_by("-sequence").first()
        return LedgerVerification(
            wallet=wallet,
            balance=wallet.balance,
            history_total=stats["total"] or ZERO,
            latest_balance_after=latest.balance_after if latest else None,
            transaction_count=wallet.transactions.count(),
            max_sequence=stats["max_sequence"] or 0,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _append(
        self,
        wallet: Wallet,
        txn_type: TransactionType,
        amount: Decimal,
        *,
        reference: str,
        description: str,
        metadata: dict[str, Any],
    ) -> LedgerEntry:
        """Apply a movement to a wallet that the caller has already locked."""
        if reference and wallet.transactions.filter(reference=reference).exists():
            raise InvalidStateError(
                detail=f"Reference {reference} has already been applied to this wallet.",
                code="duplicate_reference",
            )

        signed_amount = amount if txn_type == TransactionType.CREDIT else -amount
        latest = wallet.transactions.order_by("-sequence").first()
        recorded_balance = latest.balance_after if latest else ZERO
        if wallet.balance != recorded_balance:
            # The wallet was read without its row lock and another write landed
            # in between; applying on top of it would fork the history.
            raise InvalidStateError(
                detail=(
                    f"Wallet {wallet.pk} balance {wallet.balance} does not match "
                    f"its latest transaction ({recorded_balance})."
                ),
                code="stale_wallet",
            )
        new_balance = wallet.balance + signed_amount
        last_sequence = latest.sequence if latest else 0

        wallet.balance = new_balance
        wallet.save(update_fields=["balance", "modified"])

        txn = LedgerTransaction.objects.create(
            wallet=wallet,
            sequence=last_sequence + 1,
            type=txn_type,
            amount=signed_amount,
            balance_after=new_balance,
            reference=reference,
            description=description,
            metadata=metadata,
        )

        logger.info(
            "Ledger %s of %s on wallet %s (seq=%d, balance=%s, ref=%s)",
            txn_type,
            amount,
            wallet.pk,
            txn.sequence,
            new_balance,
            reference or "-",
            extra={
                "wallet_id": str(wallet.pk),
                "account_id": str(wallet.account_id),
                "ledger_reference": reference,
            },
        )
        return LedgerEntry(transaction=txn, balance=new_balance)

    @staticmethod
    def _lock_wallets(wallet_pks: list[UUID]) -> dict[UUID, Wallet]:
        """Lock wallets one by one in primary-key order."""
        return {
            pk: Wallet.objects.select_for_update().get(pk=pk)
            for pk in sorted(set(wallet_pks))
        }

    @staticmethod
    def _check_funds(wallet: Wallet, amount: Decimal) -> None:
        if wallet.balance < amount:
            raise InsufficientFundsError(
                detail=(
                    f"Debit of {amount} exceeds the wallet balance of "
                    f"{wallet.balance}."
                ),
                required=amount,
                available=wallet.balance,
            )

    @staticmethod
    def _validate_amount(amount) -> Decimal:
        value = to_decimal(amount)
        if value is None:
            raise InvalidAmountError(detail=f"Amount {amount!r} is not a number.")
        value = quantize_money(value)
        if value <= ZERO:
            raise InvalidAmountError(amount=value)
        return value

    @staticmethod
    def _validate_metadata(metadata) -> dict[str, Any]:
        try:
            return dump_ledger_metadata(metadata)
        except ValidationError as exc:
            raise InvalidRequestError(
                detail=f"Invalid ledger metadata: {exc.error_count()} error(s).",
                code="invalid_metadata",
            ) from exc
