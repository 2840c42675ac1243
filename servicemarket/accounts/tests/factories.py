from collections.abc import Sequence
from typing import Any

import factory
from django.contrib.auth import get_user_model
from factory import Faker
from factory import post_generation
from factory.django import DjangoModelFactory

from servicemarket.accounts.constants import PaymentStatus
from servicemarket.accounts.models import Account


class UserFactory(DjangoModelFactory):
    class Meta:
        model = get_user_model()
        django_get_or_create = ["username"]
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = Faker("email")
    is_active = True

    @post_generation
    def password(self, create: bool, extracted: Sequence[Any], **kwargs):  # noqa: FBT001
        self.set_password(extracted or "not-a-real-password")
        if create:
            self.save(update_fields=["password"])


class AccountFactory(DjangoModelFactory):
    class Meta:
        model = Account

    user = factory.SubFactory(UserFactory)
    display_name = Faker("company")
    payment_status = PaymentStatus.PENDING
