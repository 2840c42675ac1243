import pytest

from servicemarket.accounts.models import Account
from servicemarket.accounts.tests.factories import AccountFactory
from servicemarket.billing.models import Plan
from servicemarket.billing.tests.factories import PlanFactory


@pytest.fixture
def account(db) -> Account:
    return AccountFactory()


@pytest.fixture
def pro_plan(db) -> Plan:
    return PlanFactory(slug="pro", name="Pro")
