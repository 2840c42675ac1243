"""
Service-layer exceptions shared by every Service Market app.

Every error raised by the ledger, referral and billing services is a
``ServiceError`` carrying a human-readable ``detail`` and a stable
machine-readable ``code``. The ``kind`` groups codes into the handful of
categories callers actually branch on:

    not_found           - the referenced record does not exist
    invalid_state       - the record exists but is in the wrong state
    validation          - the request itself is malformed or not allowed
    insufficient_funds  - a debit would take a wallet below zero
    upstream_failure    - a collaborator (payment, notifications) failed

Usage:
    try:
        LedgerService().debit(account, amount, reference="PAYOUT-1")
    except InsufficientFundsError as exc:
        logger.warning("Payout refused: %s", exc.detail)
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _


class ErrorKind(models.TextChoices):
    NOT_FOUND = "not_found", _("Not found")
    INVALID_STATE = "invalid_state", _("Invalid state")
    VALIDATION = "validation", _("Validation")
    INSUFFICIENT_FUNDS = "insufficient_funds", _("Insufficient funds")
    UPSTREAM_FAILURE = "upstream_failure", _("Upstream failure")


class ServiceError(Exception):
    """Base exception for service-layer errors."""

    kind: str = ErrorKind.VALIDATION

    def __init__(self, detail: str, code: str = "service_error"):
        self.detail = detail
        self.code = code
        super().__init__(detail)


class NotFoundError(ServiceError):
    """Raised when a referenced record does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, detail: str = "Not found.", code: str = "not_found"):
        super().__init__(detail, code=code)


class InvalidStateError(ServiceError):
    """Raised when a transition is requested from a state that forbids it."""

    kind = ErrorKind.INVALID_STATE

    def __init__(
        self,
        detail: str = "Operation not allowed in the current state.",
        code: str = "invalid_state",
        status: str = "",
    ):
        self.status = status
        super().__init__(detail, code=code)


class InvalidRequestError(ServiceError):
    """Raised when the request is malformed or not permitted."""

    kind = ErrorKind.VALIDATION

    def __init__(self, detail: str = "Invalid request.", code: str = "validation"):
        super().__init__(detail, code=code)


class SelfReferralError(InvalidRequestError):
    """Raised when an account tries to redeem its own referral code."""

    def __init__(self, detail: str = "You cannot refer yourself."):
        super().__init__(detail, code="self_referral")


class DuplicateReferralError(InvalidRequestError):
    """Raised when a referrer/referee pair already exists."""

    def __init__(self, detail: str = "This referral has already been recorded."):
        super().__init__(detail, code="duplicate_referral")


class InactivePlanError(InvalidRequestError):
    """Raised when subscribing to a plan that is no longer offered."""

    def __init__(
        self,
        detail: str = "This plan is not available for new subscriptions.",
    ):
        super().__init__(detail, code="inactive_plan")


class InvalidAmountError(InvalidRequestError):
    """Raised when a ledger amount is zero or negative."""

    def __init__(
        self,
        detail: str = "Amount must be greater than zero.",
        amount: Decimal | None = None,
    ):
        self.amount = amount
        super().__init__(detail, code="invalid_amount")


class InsufficientFundsError(ServiceError):
    """Raised when a debit exceeds the wallet balance."""

    kind = ErrorKind.INSUFFICIENT_FUNDS

    def __init__(
        self,
        detail: str = "Insufficient wallet balance.",
        required: Decimal | None = None,
        available: Decimal | None = None,
    ):
        self.required = required
        self.available = available
        super().__init__(detail, code="insufficient_funds")


class UpstreamFailureError(ServiceError):
    """Raised when an external collaborator fails or is unreachable."""

    kind = ErrorKind.UPSTREAM_FAILURE

    def __init__(
        self,
        detail: str = "An upstream service failed.",
        code: str = "upstream_failure",
    ):
        super().__init__(detail, code=code)
