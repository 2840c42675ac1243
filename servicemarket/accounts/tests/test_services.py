"""
Tests for the account status toggle.
"""

from uuid import uuid4

import pytest
from django.test import override_settings

from servicemarket.accounts.constants import PaymentStatus
from servicemarket.accounts.services import DatabaseAccountStatusToggle
from servicemarket.accounts.services import get_account_status_toggle
from servicemarket.accounts.tests.factories import AccountFactory
from servicemarket.core.exceptions import ErrorKind
from servicemarket.core.exceptions import NotFoundError


class RecordingToggle:
    def set_payment_status(self, account_id, status):
        pass


@pytest.mark.django_db
class TestDatabaseAccountStatusToggle:
    def test_sets_paid_and_pending(self):
        account = AccountFactory(payment_status=PaymentStatus.PENDING)
        toggle = DatabaseAccountStatusToggle()

        toggle.set_payment_status(account.pk, PaymentStatus.PAID)
        account.refresh_from_db()
        assert account.payment_status == PaymentStatus.PAID
        assert account.is_paid

        toggle.set_payment_status(account.pk, PaymentStatus.PENDING)
        account.refresh_from_db()
        assert account.payment_status == PaymentStatus.PENDING

    def test_unknown_account_raises_not_found(self):
        with pytest.raises(NotFoundError) as exc_info:
            DatabaseAccountStatusToggle().set_payment_status(
                uuid4(),
                PaymentStatus.PAID,
            )
        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert exc_info.value.code == "account_not_found"

    def test_invalid_status_is_rejected(self):
        account = AccountFactory()
        with pytest.raises(ValueError):
            DatabaseAccountStatusToggle().set_payment_status(account.pk, "gold")


def test_toggle_loaded_from_settings():
    path = f"{__name__}.RecordingToggle"
    with override_settings(ACCOUNT_STATUS_TOGGLE_CLASS=path):
        assert isinstance(get_account_status_toggle(), RecordingToggle)
