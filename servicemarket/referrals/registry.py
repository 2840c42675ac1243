"""
Referral registry: issuing codes and recording who referred whom.

Usage:
    registry = ReferralRegistry()
    code = registry.issue_code(referrer_account)      # e.g. "ACME7K2Q"
    referral = registry.process_referral(new_account, "ACME7K2Q")
    stats = registry.referral_stats(referrer_account)
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError
from django.db import transaction
from django.db.models import Count
from django.db.models import Q
from django.db.models import Sum

from servicemarket.accounts.models import Account
from servicemarket.core.exceptions import DuplicateReferralError
from servicemarket.core.exceptions import InvalidStateError
from servicemarket.core.exceptions import NotFoundError
from servicemarket.core.exceptions import SelfReferralError
from servicemarket.core.money import ZERO
from servicemarket.referrals.constants import CODE_ALPHABET
from servicemarket.referrals.constants import CODE_PREFIX_LENGTH
from servicemarket.referrals.constants import CODE_SUFFIX_LENGTH
from servicemarket.referrals.constants import FALLBACK_CODE_PREFIX
from servicemarket.referrals.constants import TOP_REFERRERS_LIMIT
from servicemarket.referrals.constants import CommissionStatus
from servicemarket.referrals.constants import ReferralStatus
from servicemarket.referrals.models import Commission
from servicemarket.referrals.models import Referral
from servicemarket.referrals.models import ReferralCode

if TYPE_CHECKING:
    from django.db.models import QuerySet

logger = logging.getLogger(__name__)

_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


@dataclass(frozen=True)
class ReferralCodeDetails:
    """Public information about the owner of a referral code."""

    account_id: str
    display_name: str
    code: str
    total_referrals: int


@dataclass(frozen=True)
class ReferralStats:
    total_referrals: int
    completed_referrals: int
    pending_referrals: int
    total_commissions: Decimal
    pending_commissions: Decimal
    paid_commissions: Decimal


def code_prefix(display_name: str) -> str:
    """First ASCII alphanumerics of the display name, uppercased."""
    return _NON_ALPHANUMERIC.sub("", display_name or "")[:CODE_PREFIX_LENGTH].upper()


def random_suffix() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))


def fallback_code(account: Account) -> str:
    return f"{FALLBACK_CODE_PREFIX}{account.pk.hex[:8].upper()}"


class ReferralRegistry:
    """Issues referral codes and records referrals."""

    def issue_code(self, account: Account) -> ReferralCode:
        """
        Return the account's referral code, generating one on first use.

        Candidates are checked for global uniqueness and regenerated on
        collision up to REFERRAL_CODE_MAX_ATTEMPTS times; after that the
        account-derived fallback code is used.
        """
        existing = ReferralCode.objects.filter(account=account).first()
        if existing:
            return existing

        prefix = code_prefix(account.display_name)
        for attempt in range(1, settings.REFERRAL_CODE_MAX_ATTEMPTS + 1):
            candidate = f"{prefix}{random_suffix()}"
            if ReferralCode.objects.filter(code=candidate).exists():
                logger.debug("Referral code %s taken (attempt %d)", candidate, attempt)
                continue
            referral_code = self._create_code(account, candidate)
            if referral_code:
                return referral_code

        candidate = fallback_code(account)
        referral_code = self._create_code(account, candidate)
        if referral_code is None:
            raise InvalidStateError(
                detail=f"Could not allocate a referral code for account {account.pk}.",
                code="referral_code_unavailable",
            )
        logger.warning(
            "Used fallback referral code %s for account %s",
            candidate,
            account.pk,
            extra={"account_id": str(account.pk)},
        )
        return referral_code

    def _create_code(self, account: Account, candidate: str) -> ReferralCode | None:
        """
        Insert ``candidate``; None if it lost a race for the code.

        If another request issued a code for this account concurrently, that
        code is returned instead.
        """
        try:
            with transaction.atomic():
                referral_code = ReferralCode.objects.create(account=account, code=candidate)
        except IntegrityError:
            return ReferralCode.objects.filter(account=account).first()

        logger.info(
            "Issued referral code %s to account %s",
            candidate,
            account.pk,
            extra={"account_id": str(account.pk)},
        )
        return referral_code

    def process_referral(self, referee: Account, code: str) -> Referral:
        """
        Record that ``referee`` signed up with ``code``.

        Creates a pending referral with the current REFERRAL_COMMISSION_RATE
        and sets ``referee.referred_by``.

        Raises:
            NotFoundError: If the code does not exist.
            SelfReferralError: If the code belongs to the referee.
            DuplicateReferralError: If the referee was already referred.
        """
        normalized = (code or "").strip().upper()
        try:
            referral_code = ReferralCode.objects.select_related("account").get(
                code=normalized,
            )
        except ReferralCode.DoesNotExist:
            raise NotFoundError(
                detail="Invalid referral code.",
                code="invalid_referral_code",
            ) from None

        referrer = referral_code.account
        if referrer.pk == referee.pk:
            raise SelfReferralError

        try:
            with transaction.atomic():
                # Re-read the referee under a row lock; the caller's instance
                # may be stale or a concurrent sign-up may have redeemed a code.
                locked_referee = Account.objects.select_for_update().get(pk=referee.pk)
                self._ensure_not_referred(locked_referee, referrer)
                referral = Referral.objects.create(
                    referrer=referrer,
                    referee=locked_referee,
                    code=normalized,
                    status=ReferralStatus.PENDING,
                    commission_rate=settings.REFERRAL_COMMISSION_RATE,
                )
                Account.objects.filter(pk=referee.pk).update(referred_by=referrer)
        except IntegrityError:
            raise DuplicateReferralError from None

        referee.referred_by = referrer
        logger.info(
            "Recorded referral %s: %s referred %s",
            referral.pk,
            referrer.pk,
            referee.pk,
            extra={
                "referral_id": str(referral.pk),
                "referrer_id": str(referrer.pk),
                "referee_id": str(referee.pk),
            },
        )
        return referral

    @staticmethod
    def _ensure_not_referred(referee: Account, referrer: Account) -> None:
        """Raise DuplicateReferralError if ``referee`` already has a referral."""
        if Referral.objects.filter(referrer=referrer, referee=referee).exists():
            raise DuplicateReferralError
        if (
            referee.referred_by_id not in (None, referrer.pk)
            or Referral.objects.filter(referee=referee).exists()
        ):
            raise DuplicateReferralError(
                detail="This account has already been referred by another account.",
            )

    def get_code_details(self, code: str) -> ReferralCodeDetails:
        """Public details of the account behind ``code``."""
        try:
            referral_code = ReferralCode.objects.select_related("account").get(
                code=(code or "").strip().upper(),
            )
        except ReferralCode.DoesNotExist:
            raise NotFoundError(
                detail="Invalid referral code.",
                code="invalid_referral_code",
            ) from None

        account = referral_code.account
        return ReferralCodeDetails(
            account_id=str(account.pk),
            display_name=account.display_name,
            code=referral_code.code,
            total_referrals=account.total_referrals,
        )

    def referral_stats(self, account: Account) -> ReferralStats:
        """Referral counts and commission totals for a referrer."""
        referrals = Referral.objects.filter(referrer=account).aggregate(
            total=Count("pk"),
            completed=Count("pk", filter=Q(status=ReferralStatus.COMPLETED)),
            pending=Count("pk", filter=Q(status=ReferralStatus.PENDING)),
        )
        commissions = Commission.objects.filter(referrer=account).aggregate(
            total=Sum("commission_amount"),
            pending=Sum("commission_amount", filter=Q(status=CommissionStatus.PENDING)),
            paid=Sum("commission_amount", filter=Q(status=CommissionStatus.PAID)),
        )
        return ReferralStats(
            total_referrals=referrals["total"],
            completed_referrals=referrals["completed"],
            pending_referrals=referrals["pending"],
            total_commissions=commissions["total"] or ZERO,
            pending_commissions=commissions["pending"] or ZERO,
            paid_commissions=commissions["paid"] or ZERO,
        )

    def top_referrers(self, limit: int = TOP_REFERRERS_LIMIT) -> QuerySet[Account]:
        """Accounts with completed referrals, most referrals first."""
        return Account.objects.filter(total_referrals__gt=0).order_by(
            "-total_referrals",
            "-total_commissions_earned",
        )[:limit]
