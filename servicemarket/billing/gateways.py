"""
Payment processor interface used for automatic renewals.

The scheduler charges through whatever PAYMENT_PROCESSOR_CLASS names. A
processor either returns a ``ChargeResult`` (declines are results, not
errors) or raises ``UpstreamFailureError`` when it cannot reach its
provider. Both outcomes move the subscription to PAST_DUE.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    reference: str = ""
    message: str = ""


class PaymentProcessor(Protocol):
    """Charges an account for a renewal."""

    def charge(self, account_id: UUID, amount: Decimal, reference: str) -> ChargeResult: ...


class UnconfiguredPaymentProcessor:
    """
    Declines every charge.

    Used until a deployment configures a real processor, so renewals fall
    through to the grace-period flow instead of granting free periods.
    """

    def charge(self, account_id: UUID, amount: Decimal, reference: str) -> ChargeResult:
        logger.warning(
            "No payment processor configured; declining renewal charge %s",
            reference,
            extra={"account_id": str(account_id)},
        )
        return ChargeResult(
            success=False,
            reference=reference,
            message="No payment processor configured.",
        )


def get_payment_processor() -> PaymentProcessor:
    """Instantiate the processor configured by PAYMENT_PROCESSOR_CLASS."""
    return import_string(settings.PAYMENT_PROCESSOR_CLASS)()
