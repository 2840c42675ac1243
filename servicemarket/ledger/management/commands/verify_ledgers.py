"""
Management command to check every wallet against its transaction history.

For each wallet, verifies that the stored balance equals both the sum of
its transaction amounts and the ``balance_after`` of its latest
transaction, and that sequences have no gaps. Mismatches are written to
stderr; nothing is modified.

Usage:
    python manage.py verify_ledgers
    python manage.py verify_ledgers --account=<account uuid>
    python manage.py verify_ledgers --fail-on-error   # non-zero exit on mismatch
"""

import logging

from django.core.management.base import BaseCommand
from django.core.management.base import CommandError

from servicemarket.ledger.models import Wallet
from servicemarket.ledger.services import LedgerService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Verify that wallet balances match their transaction history."

    def add_arguments(self, parser):
        parser.add_argument(
            "--account",
            type=str,
            help="Only verify the wallet of this account id",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=500,
            help="Wallets fetched per query (default: 500)",
        )
        parser.add_argument(
            "--fail-on-error",
            action="store_true",
            help="Exit with an error if any wallet is inconsistent",
        )

    def handle(self, *args, **options):
        service = LedgerService()
        wallets = Wallet.objects.select_related("account").order_by("pk")
        if options["account"]:
            wallets = wallets.filter(account_id=options["account"])

        checked = 0
        broken = 0
        for wallet in wallets.iterator(chunk_size=options["batch_size"]):
            checked += 1
            result = service.verify(wallet)
            if result.ok:
                continue
            broken += 1
            for problem in result.problems:
                self.stderr.write(
                    self.style.ERROR(f"Wallet {wallet.pk} ({wallet.account}): {problem}")
                )
            logger.error(
                "Ledger mismatch on wallet %s: %s",
                wallet.pk,
                "; ".join(result.problems),
                extra={"wallet_id": str(wallet.pk)},
            )

        if broken:
            message = f"{broken} of {checked} wallet(s) are inconsistent."
            if options["fail_on_error"]:
                raise CommandError(message)
            self.stdout.write(self.style.WARNING(message))
            return

        self.stdout.write(self.style.SUCCESS(f"Verified {checked} wallet(s); all consistent."))
