from datetime import timedelta
from decimal import Decimal

import factory
from django.utils import timezone
from factory.django import DjangoModelFactory

from servicemarket.accounts.tests.factories import AccountFactory
from servicemarket.billing.constants import PlanInterval
from servicemarket.billing.constants import SubscriptionStatus
from servicemarket.billing.models import Plan
from servicemarket.billing.models import Subscription


class PlanFactory(DjangoModelFactory):
    class Meta:
        model = Plan
        django_get_or_create = ["slug"]

    slug = factory.Sequence(lambda n: f"plan-{n}")
    name = factory.LazyAttribute(lambda o: o.slug.replace("-", " ").title())
    price = Decimal("10000.00")
    interval = PlanInterval.MONTHLY
    is_active = True


class SubscriptionFactory(DjangoModelFactory):
    """
    An active subscription whose period started now.

    Pass ``current_period_end`` to place it before or after "now".
    """

    class Meta:
        model = Subscription

    account = factory.SubFactory(AccountFactory)
    plan = factory.SubFactory(PlanFactory)
    status = SubscriptionStatus.ACTIVE
    current_period_end = factory.LazyFunction(lambda: timezone.now() + timedelta(days=30))
    current_period_start = factory.LazyAttribute(
        lambda o: o.current_period_end - timedelta(days=30),
    )
    auto_renew = True
    price = factory.LazyAttribute(lambda o: o.plan.price)
