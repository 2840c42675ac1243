from decimal import Decimal

import factory
from factory.django import DjangoModelFactory

from servicemarket.accounts.tests.factories import AccountFactory
from servicemarket.ledger.models import Wallet


class WalletFactory(DjangoModelFactory):
    """An empty wallet. Use LedgerService to give it a balance."""

    class Meta:
        model = Wallet

    account = factory.SubFactory(AccountFactory)
    balance = Decimal("0.00")
    currency = "NGN"
