"""
Tests for LedgerService.

Covers the balance invariant (balance == latest balance_after == sum of
amounts), validation of amounts and metadata, append-only enforcement and
the read models used by the wallet screens.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import IntegrityError
from django.db import connection
from django.db import transaction
from django.db.models import QuerySet
from django.test import TestCase

from servicemarket.accounts.tests.factories import AccountFactory
from servicemarket.core.exceptions import ErrorKind
from servicemarket.core.exceptions import InsufficientFundsError
from servicemarket.core.exceptions import InvalidAmountError
from servicemarket.core.exceptions import InvalidRequestError
from servicemarket.core.exceptions import InvalidStateError
from servicemarket.core.exceptions import NotFoundError
from servicemarket.ledger.constants import TransactionType
from servicemarket.ledger.metadata import CommissionPayoutMetadata
from servicemarket.ledger.metadata import GenericLedgerMetadata
from servicemarket.ledger.metadata import TransferMetadata
from servicemarket.ledger.metadata import WithdrawalMetadata
from servicemarket.ledger.models import LedgerTransaction
from servicemarket.ledger.models import Wallet
from servicemarket.ledger.services import LedgerService
from servicemarket.ledger.tests.factories import WalletFactory


class LedgerCreditDebitTests(TestCase):
    """Credits and debits keep the wallet and its history in step."""

    def setUp(self):
        self.account = AccountFactory()
        self.service = LedgerService()

    def test_first_credit_creates_wallet(self):
        self.assertFalse(Wallet.objects.filter(account=self.account).exists())

        entry = self.service.credit(self.account, Decimal("1000.00"), reference="R1")

        wallet = Wallet.objects.get(account=self.account)
        self.assertEqual(wallet.balance, Decimal("1000.00"))
        self.assertEqual(wallet.currency, "NGN")
        self.assertEqual(entry.balance, Decimal("1000.00"))
        self.assertEqual(entry.transaction.sequence, 1)
        self.assertEqual(entry.transaction.type, TransactionType.CREDIT)
        self.assertEqual(entry.transaction.balance_after, Decimal("1000.00"))

    def test_debit_is_stored_negative(self):
        self.service.credit(self.account, "500.00")
        entry = self.service.debit(self.account, "120.50", description="Payout")

        self.assertEqual(entry.transaction.amount, Decimal("-120.50"))
        self.assertEqual(entry.transaction.sequence, 2)
        self.assertEqual(entry.balance, Decimal("379.50"))

    def test_balance_matches_history_after_mixed_operations(self):
        for amount in ["100.00", "250.25", "0.75"]:
            self.service.credit(self.account, amount)
        self.service.debit(self.account, "51.00")
        self.service.credit(self.account, "10")

        wallet = Wallet.objects.get(account=self.account)
        amounts = list(wallet.transactions.values_list("amount", flat=True))
        latest = wallet.transactions.order_by("-sequence").first()

        self.assertEqual(wallet.balance, Decimal("310.00"))
        self.assertEqual(sum(amounts), wallet.balance)
        self.assertEqual(latest.balance_after, wallet.balance)
        self.assertEqual(
            list(wallet.transactions.values_list("sequence", flat=True)),
            [1, 2, 3, 4, 5],
        )
        self.assertTrue(self.service.verify(wallet).ok)

    def test_debit_exceeding_balance_is_refused(self):
        self.service.credit(self.account, "50.00")

        with self.assertRaises(InsufficientFundsError) as ctx:
            self.service.debit(self.account, "50.01")

        self.assertEqual(ctx.exception.kind, ErrorKind.INSUFFICIENT_FUNDS)
        self.assertEqual(ctx.exception.available, Decimal("50.00"))
        self.assertEqual(self.service.get_balance(self.account), Decimal("50.00"))
        self.assertEqual(LedgerTransaction.objects.count(), 1)

    def test_debit_of_entire_balance_is_allowed(self):
        self.service.credit(self.account, "50.00")
        entry = self.service.debit(self.account, "50.00")
        self.assertEqual(entry.balance, Decimal("0.00"))

    def test_debit_without_wallet_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            self.service.debit(self.account, "1.00")

    def test_non_positive_or_non_numeric_amounts_are_rejected(self):
        for amount in [0, "0.00", -5, "-0.01", "abc", None, "NaN", True]:
            with self.subTest(amount=amount), self.assertRaises(InvalidAmountError):
                self.service.credit(self.account, amount)
        self.assertFalse(Wallet.objects.filter(account=self.account).exists())

    def test_amount_rounds_half_up_to_cents(self):
        entry = self.service.credit(self.account, "10.005")
        self.assertEqual(entry.transaction.amount, Decimal("10.01"))

    def test_sub_cent_amount_is_rejected(self):
        with self.assertRaises(InvalidAmountError):
            self.service.credit(self.account, "0.004")

    def test_reused_reference_is_refused(self):
        self.service.credit(self.account, "10.00", reference="COMM_1")

        with self.assertRaises(InvalidStateError) as ctx:
            self.service.credit(self.account, "10.00", reference="COMM_1")

        self.assertEqual(ctx.exception.code, "duplicate_reference")
        self.assertEqual(self.service.get_balance(self.account), Decimal("10.00"))

    def test_same_reference_allowed_on_different_wallets(self):
        other = AccountFactory()
        self.service.credit(self.account, "10.00", reference="SHARED")
        self.service.credit(other, "10.00", reference="SHARED")
        self.assertEqual(self.service.get_balance(other), Decimal("10.00"))


class LedgerAppendOnlyTests(TestCase):
    def test_existing_transaction_cannot_be_updated_or_deleted(self):
        account = AccountFactory()
        entry = LedgerService().credit(account, "5.00")
        txn = LedgerTransaction.objects.get(pk=entry.transaction.pk)

        txn.description = "edited"
        with self.assertRaises(InvalidStateError):
            txn.save()
        with self.assertRaises(InvalidStateError):
            txn.delete()

        txn.refresh_from_db()
        self.assertEqual(txn.description, "")


class LedgerMetadataTests(TestCase):
    def setUp(self):
        self.account = AccountFactory()

    def test_typed_metadata_round_trips(self):
        entry = LedgerService().credit(
            self.account,
            "10.00",
            metadata=CommissionPayoutMetadata(commission_id="c-1", referral_id="r-1"),
        )

        typed = entry.transaction.typed_metadata
        self.assertIsInstance(typed, CommissionPayoutMetadata)
        self.assertEqual(typed.commission_id, "c-1")
        self.assertEqual(typed.version, 1)

    def test_missing_metadata_is_generic(self):
        entry = LedgerService().credit(self.account, "10.00")
        self.assertIsInstance(entry.transaction.typed_metadata, GenericLedgerMetadata)
        self.assertEqual(entry.transaction.metadata["kind"], "generic")

    def test_invalid_metadata_is_rejected(self):
        with self.assertRaises(InvalidRequestError) as ctx:
            LedgerService().credit(
                self.account,
                "10.00",
                metadata={"kind": "commission_payout"},
            )
        self.assertEqual(ctx.exception.code, "invalid_metadata")


@pytest.mark.django_db
class TestLedgerReadModels:
    def test_balance_is_zero_without_wallet(self):
        assert LedgerService().get_balance(AccountFactory()) == Decimal("0.00")

    def test_summary_totals_and_recent(self):
        account = AccountFactory()
        service = LedgerService()
        for i in range(12):
            service.credit(account, "10.00", reference=f"C{i}")
        service.debit(account, "25.00", reference="D1")

        summary = service.get_summary(account)

        assert summary.balance == Decimal("95.00")
        assert summary.total_credits == Decimal("120.00")
        assert summary.total_debits == Decimal("25.00")
        assert summary.net == Decimal("95.00")
        assert summary.currency == "NGN"
        assert len(summary.recent_transactions) == 10
        assert summary.recent_transactions[0].reference == "D1"

    def test_summary_without_wallet(self):
        summary = LedgerService().get_summary(AccountFactory())
        assert summary.balance == Decimal("0.00")
        assert summary.recent_transactions == []

    def test_list_transactions_filters(self):
        account = AccountFactory()
        service = LedgerService()
        service.credit(account, "10.00", reference="COMM_1", description="Referral commission")
        service.credit(account, "20.00", reference="TOPUP", description="Top up")
        service.debit(account, "5.00", reference="PAYOUT", description="Withdrawal")

        assert service.list_transactions(account).count() == 3
        assert service.list_transactions(account, type="debit").count() == 1
        assert [t.reference for t in service.list_transactions(account, search="comm")] == [
            "COMM_1",
        ]

    def test_verify_detects_tampered_balance(self):
        account = AccountFactory()
        LedgerService().credit(account, "10.00")
        wallet = Wallet.objects.get(account=account)
        Wallet.objects.filter(pk=wallet.pk).update(balance=Decimal("99.00"))

        result = LedgerService().verify(wallet)

        assert not result.ok
        assert result.balance == Decimal("99.00")
        assert result.history_total == Decimal("10.00")


@pytest.mark.django_db
class TestLedgerTransfer:
    @pytest.fixture
    def sender(self):
        account = AccountFactory(display_name="Sender")
        LedgerService().credit(account, "100.00", reference="SEED")
        return account

    @pytest.fixture
    def receiver(self):
        return AccountFactory(display_name="Receiver")

    def test_moves_funds_between_wallets(self, sender, receiver):
        result = LedgerService().transfer(
            sender,
            receiver,
            "40.00",
            reference="TRF-1",
            description="Job share",
        )

        assert result.debit.balance == Decimal("60.00")
        assert result.credit.balance == Decimal("40.00")
        assert result.debit.transaction.amount == Decimal("-40.00")
        assert result.debit.transaction.description == "Transfer to Receiver: Job share"
        assert result.credit.transaction.description == "Transfer from Sender: Job share"

        outgoing = result.debit.transaction.typed_metadata
        incoming = result.credit.transaction.typed_metadata
        assert isinstance(outgoing, TransferMetadata)
        assert outgoing.direction == "outgoing"
        assert outgoing.counterparty_account_id == str(receiver.pk)
        assert incoming.direction == "incoming"
        assert incoming.counterparty_account_id == str(sender.pk)

        for account in (sender, receiver):
            assert LedgerService().verify(Wallet.objects.get(account=account)).ok

    def test_insufficient_funds_changes_neither_wallet(self, sender, receiver):
        with pytest.raises(InsufficientFundsError):
            LedgerService().transfer(sender, receiver, "100.01", reference="TRF-1")

        assert LedgerService().get_balance(sender) == Decimal("100.00")
        assert LedgerService().get_balance(receiver) == Decimal("0.00")
        assert not LedgerTransaction.objects.filter(reference="TRF-1").exists()

    def test_failed_credit_rolls_back_the_debit(self, sender, receiver):
        LedgerService().credit(receiver, "5.00", reference="TRF-1")

        with pytest.raises(InvalidStateError) as exc_info:
            LedgerService().transfer(sender, receiver, "10.00", reference="TRF-1")

        assert exc_info.value.code == "duplicate_reference"
        assert LedgerService().get_balance(sender) == Decimal("100.00")
        assert LedgerService().get_balance(receiver) == Decimal("5.00")

    def test_sender_without_wallet_is_not_found(self, receiver):
        with pytest.raises(NotFoundError):
            LedgerService().transfer(AccountFactory(), receiver, "1.00", reference="TRF-1")

    @pytest.mark.parametrize(
        ("reference", "same_account", "code"),
        [
            ("TRF-1", True, "same_account_transfer"),
            ("", False, "missing_reference"),
        ],
    )
    def test_rejects_invalid_requests(self, sender, receiver, reference, same_account, code):
        to_account = sender if same_account else receiver

        with pytest.raises(InvalidRequestError) as exc_info:
            LedgerService().transfer(sender, to_account, "1.00", reference=reference)

        assert exc_info.value.code == code

    def test_currency_mismatch_is_rejected(self, sender, receiver):
        WalletFactory(account=receiver, currency="USD")

        with pytest.raises(InvalidRequestError) as exc_info:
            LedgerService().transfer(sender, receiver, "1.00", reference="TRF-1")

        assert exc_info.value.code == "currency_mismatch"
        assert LedgerService().get_balance(sender) == Decimal("100.00")

    def test_wallets_are_locked_in_primary_key_order(self, sender, receiver):
        service = LedgerService()
        service.credit(receiver, "10.00", reference="SEED")
        expected = sorted(
            Wallet.objects.filter(account__in=[sender, receiver]).values_list("pk", flat=True),
        )

        for from_account, to_account in [(sender, receiver), (receiver, sender)]:
            with patch.object(
                QuerySet,
                "get",
                autospec=True,
                side_effect=QuerySet.get,
            ) as get:
                service.transfer(
                    from_account,
                    to_account,
                    "1.00",
                    reference=f"TRF-{from_account.display_name}",
                )

            locked = [
                call.kwargs["pk"]
                for call in get.call_args_list
                if call.args[0].query.select_for_update
            ]
            assert locked == expected


@pytest.mark.django_db
class TestLedgerWithdraw:
    def test_debits_with_withdrawal_metadata(self):
        account = AccountFactory()
        LedgerService().credit(account, "50.00", reference="SEED")

        entry = LedgerService().withdraw(
            account,
            "20.00",
            destination="GTBank 0123456789",
            external_reference="PSTK-TRF-9",
        )

        txn = entry.transaction
        assert entry.balance == Decimal("30.00")
        assert txn.type == TransactionType.DEBIT
        assert txn.reference.startswith("WITHDRAWAL_")
        assert txn.description == "Withdrawal to GTBank 0123456789"
        typed = txn.typed_metadata
        assert isinstance(typed, WithdrawalMetadata)
        assert typed.destination == "GTBank 0123456789"
        assert typed.external_reference == "PSTK-TRF-9"

    def test_explicit_reference_is_kept(self):
        account = AccountFactory()
        LedgerService().credit(account, "50.00", reference="SEED")

        entry = LedgerService().withdraw(account, "5.00", destination="Opay", reference="WD-1")

        assert entry.transaction.reference == "WD-1"

    def test_insufficient_funds(self):
        account = AccountFactory()
        LedgerService().credit(account, "5.00", reference="SEED")

        with pytest.raises(InsufficientFundsError):
            LedgerService().withdraw(account, "5.01", destination="Opay")

        assert LedgerService().get_balance(account) == Decimal("5.00")

    def test_destination_is_required(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            LedgerService().withdraw(AccountFactory(), "5.00", destination="")
        assert exc_info.value.code == "missing_destination"


class LedgerSerializationTests(TestCase):
    """Writes to one wallet go through its row lock; a stale read fails loudly."""

    def setUp(self):
        self.account = AccountFactory()
        self.service = LedgerService()
        self.service.credit(self.account, "10.00")

    def test_credit_and_debit_lock_the_wallet_row(self):
        with patch.object(
            QuerySet,
            "select_for_update",
            autospec=True,
            side_effect=QuerySet.select_for_update,
        ) as select_for_update:
            self.service.credit(self.account, "5.00")
            self.service.debit(self.account, "2.00")

        locked = [call.args[0].model for call in select_for_update.call_args_list]
        self.assertEqual(locked, [Wallet, Wallet])

    def test_write_on_stale_wallet_read_is_refused(self):
        stale = Wallet.objects.get(account=self.account)
        self.service.credit(self.account, "5.00")

        with self.assertRaises(InvalidStateError) as ctx, transaction.atomic():
            self.service._append(
                stale,
                TransactionType.CREDIT,
                Decimal("1.00"),
                reference="",
                description="",
                metadata={},
            )

        self.assertEqual(ctx.exception.code, "stale_wallet")
        wallet = Wallet.objects.get(account=self.account)
        self.assertEqual(wallet.balance, Decimal("15.00"))
        self.assertEqual(wallet.transactions.count(), 2)
        self.assertTrue(self.service.verify(wallet).ok)

    def test_duplicate_sequence_is_rejected_by_database(self):
        wallet = Wallet.objects.get(account=self.account)

        with self.assertRaises(IntegrityError), transaction.atomic():
            LedgerTransaction.objects.create(
                wallet=wallet,
                sequence=1,
                type=TransactionType.CREDIT,
                amount=Decimal("1.00"),
                balance_after=Decimal("11.00"),
            )


@pytest.mark.skipif(
    connection.vendor != "postgresql",
    reason="Row-level locking requires PostgreSQL",
)
@pytest.mark.django_db(transaction=True)
def test_concurrent_credits_serialize_on_wallet_lock():
    account = AccountFactory()
    LedgerService().credit(account, "1.00", reference="seed")

    def credit(i):
        try:
            LedgerService().credit(account, "1.00", reference=f"C{i}")
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(credit, range(20)))

    wallet = Wallet.objects.get(account=account)
    assert wallet.balance == Decimal("21.00")
    assert LedgerService().verify(wallet).ok
