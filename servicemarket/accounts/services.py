"""
Account status toggle.

The expiration scheduler and the subscription service flip an account's
``payment_status`` whenever a subscription starts, renews or lapses. The
flag gates premium features elsewhere in the marketplace, so the toggle is
pluggable: deployments that keep this flag in another service can point
ACCOUNT_STATUS_TOGGLE_CLASS at their own implementation.
"""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from django.conf import settings
from django.utils.module_loading import import_string

from servicemarket.accounts.constants import PaymentStatus
from servicemarket.accounts.models import Account
from servicemarket.core.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class AccountStatusToggle(Protocol):
    """Sets the feature-gating payment status of an account."""

    def set_payment_status(self, account_id: UUID, status: PaymentStatus) -> None: ...


class DatabaseAccountStatusToggle:
    """Writes ``Account.payment_status`` directly."""

    def set_payment_status(self, account_id: UUID, status: PaymentStatus) -> None:
        updated = Account.objects.filter(pk=account_id).update(
            payment_status=PaymentStatus(status),
        )
        if not updated:
            raise NotFoundError(
                detail=f"Account {account_id} not found.",
                code="account_not_found",
            )
        logger.info(
            "Set payment status of account %s to %s",
            account_id,
            status,
            extra={"account_id": str(account_id), "payment_status": str(status)},
        )


def get_account_status_toggle() -> AccountStatusToggle:
    """Instantiate the toggle configured by ACCOUNT_STATUS_TOGGLE_CLASS."""
    return import_string(settings.ACCOUNT_STATUS_TOGGLE_CLASS)()
