"""
Commission engine: turns a completed referral into money exactly once.

Flow:
    1. SubscriptionService.create_subscription() enqueues
       process_commission_task after its transaction commits.
    2. process_commission() finds the referee's pending referral under a row
       lock, records a PENDING Commission, completes the referral and bumps
       the referrer's counters, all in one transaction.
    3. An operator (admin action, ``pay_commissions`` command) or the
       auto-payout job calls pay_commission(), which credits the referrer's
       ledger and flips the commission to PAID in one transaction.

Both steps re-check state under ``select_for_update``, so duplicate task
deliveries and double-clicks are no-ops or InvalidStateErrors, never double
payments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from uuid import UUID

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from servicemarket.accounts.models import Account
from servicemarket.billing.models import Subscription
from servicemarket.core.exceptions import InvalidRequestError
from servicemarket.core.exceptions import InvalidStateError
from servicemarket.core.exceptions import NotFoundError
from servicemarket.core.exceptions import ServiceError
from servicemarket.core.money import ZERO
from servicemarket.core.money import percentage_of
from servicemarket.ledger.metadata import CommissionPayoutMetadata
from servicemarket.ledger.services import LedgerService
from servicemarket.notifications.models import Notification
from servicemarket.notifications.senders import NotificationSender
from servicemarket.notifications.senders import get_notification_sender
from servicemarket.notifications.senders import notify_safely
from servicemarket.referrals.constants import COMMISSION_REFERENCE_PREFIX
from servicemarket.referrals.constants import CommissionStatus
from servicemarket.referrals.constants import PaymentMethod
from servicemarket.referrals.constants import ReferralStatus
from servicemarket.referrals.models import Commission
from servicemarket.referrals.models import Referral

logger = logging.getLogger(__name__)


@dataclass
class PayoutResult:
    """Outcome of a pay_pending_commissions() batch."""

    paid: int = 0
    failed: int = 0
    paid_ids: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)


class CommissionEngine:
    """
    Records and pays referral commissions.

    Usage:
        engine = CommissionEngine()
        commission = engine.process_commission(subscription.pk)
        if commission:
            engine.pay_commission(commission.pk)  # credits the referrer's wallet
    """

    def __init__(
        self,
        ledger: LedgerService | None = None,
        notifier: NotificationSender | None = None,
    ):
        self.ledger = ledger or LedgerService()
        self._notifier = notifier

    @property
    def notifier(self) -> NotificationSender:
        if self._notifier is None:
            self._notifier = get_notification_sender()
        return self._notifier

    def process_commission(self, subscription_id: UUID | str) -> Commission | None:
        """
        Record the commission earned by the subscribing account's referrer.

        Returns None when the account was not referred or its referral has
        already been completed.

        Raises:
            NotFoundError: If the subscription does not exist.
        """
        try:
            subscription = Subscription.objects.select_related("account").get(
                pk=subscription_id,
            )
        except Subscription.DoesNotExist:
            raise NotFoundError(
                detail=f"Subscription {subscription_id} not found.",
                code="subscription_not_found",
            ) from None

        referee = subscription.account
        if referee.referred_by_id is None:
            logger.debug("Account %s was not referred; no commission", referee.pk)
            return None

        with transaction.atomic():
            referral = (
                Referral.objects.select_for_update()
                .filter(
                    referrer_id=referee.referred_by_id,
                    referee=referee,
                    status=ReferralStatus.PENDING,
                )
                .first()
            )
            if referral is None:
                logger.info(
                    "No pending referral for account %s; commission already "
                    "processed or referral missing",
                    referee.pk,
                    extra={"subscription_id": str(subscription.pk)},
                )
                return None

            amount = subscription.price
            commission_amount = percentage_of(amount, referral.commission_rate)

            commission = Commission.objects.create(
                referral=referral,
                referrer_id=referral.referrer_id,
                subscription=subscription,
                subscription_amount=amount,
                commission_rate=referral.commission_rate,
                commission_amount=commission_amount,
                status=CommissionStatus.PENDING,
            )

            referral.status = ReferralStatus.COMPLETED
            referral.completed_at = timezone.now()
            referral.subscription = subscription
            referral.save(update_fields=["status", "completed_at", "subscription", "modified"])

            Account.objects.filter(pk=referral.referrer_id).update(
                total_referrals=F("total_referrals") + 1,
                total_commissions_earned=F("total_commissions_earned") + commission_amount,
            )

        logger.info(
            "Recorded commission %s of %s (%s%% of %s) for referrer %s",
            commission.pk,
            commission_amount,
            referral.commission_rate,
            amount,
            referral.referrer_id,
            extra={
                "commission_id": str(commission.pk),
                "referral_id": str(referral.pk),
                "subscription_id": str(subscription.pk),
            },
        )
        return commission

    def pay_commission(
        self,
        commission_id: UUID | str,
        method: str = PaymentMethod.WALLET,
        reference: str = "",
    ) -> Commission:
        """
        Pay a pending commission.

        For WALLET payouts the referrer's ledger is credited with reference
        ``COMM_<commission id>`` in the same transaction that marks the
        commission paid; a ledger failure leaves the commission pending.
        Other methods record an external payout and require its reference.

        Raises:
            NotFoundError: If the commission does not exist.
            InvalidStateError: If the commission is not pending.
            InvalidRequestError: For an unknown method or a missing reference.
        """
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise InvalidRequestError(
                detail=f"Unknown payment method {method!r}.",
                code="invalid_payment_method",
            ) from None

        if method != PaymentMethod.WALLET and not reference:
            raise InvalidRequestError(
                detail="A payment reference is required for external payouts.",
                code="payment_reference_required",
            )

        with transaction.atomic():
            try:
                commission = Commission.objects.select_for_update().get(pk=commission_id)
            except Commission.DoesNotExist:
                raise NotFoundError(
                    detail=f"Commission {commission_id} not found.",
                    code="commission_not_found",
                ) from None

            if commission.status != CommissionStatus.PENDING:
                raise InvalidStateError(
                    detail="Commission already processed.",
                    code="commission_not_pending",
                    status=commission.status,
                )

            if method == PaymentMethod.WALLET:
                ledger_reference = f"{COMMISSION_REFERENCE_PREFIX}{commission.pk}"
                if commission.commission_amount > ZERO:
                    self.ledger.credit(
                        commission.referrer,
                        commission.commission_amount,
                        reference=ledger_reference,
                        description=(
                            "Referral commission from subscription "
                            f"{commission.subscription_id}"
                        ),
                        metadata=CommissionPayoutMetadata(
                            commission_id=str(commission.pk),
                            referral_id=str(commission.referral_id),
                            subscription_id=str(commission.subscription_id),
                        ),
                    )
                reference = reference or ledger_reference

            commission.status = CommissionStatus.PAID
            commission.paid_at = timezone.now()
            commission.payment_method = method
            commission.payment_reference = reference
            commission.save(
                update_fields=[
                    "status",
                    "paid_at",
                    "payment_method",
                    "payment_reference",
                    "modified",
                ],
            )

        logger.info(
            "Paid commission %s (%s) via %s, reference %s",
            commission.pk,
            commission.commission_amount,
            method,
            reference,
            extra={"commission_id": str(commission.pk), "payment_method": str(method)},
        )

        if method == PaymentMethod.WALLET:
            notify_safely(
                self.notifier,
                commission.referrer,
                Notification.Type.COMMISSION_PAID,
                {
                    "commission_id": str(commission.pk),
                    "amount": str(commission.commission_amount),
                    "reference": reference,
                },
            )
        return commission

    def pay_pending_commissions(
        self,
        limit: int = 100,
        method: str = PaymentMethod.WALLET,
    ) -> PayoutResult:
        """
        Pay up to ``limit`` pending commissions, oldest first.

        Each commission is paid in its own transaction; a failure is logged
        and counted without stopping the batch.
        """
        result = PayoutResult()
        pending_ids = list(
            Commission.objects.filter(status=CommissionStatus.PENDING)
            .order_by("created")
            .values_list("pk", flat=True)[:limit],
        )

        for commission_id in pending_ids:
            try:
                self.pay_commission(commission_id, method=method)
            except ServiceError as exc:
                result.failed += 1
                result.failed_ids.append(str(commission_id))
                logger.warning(
                    "Commission %s not paid: %s",
                    commission_id,
                    exc.detail,
                    extra={"commission_id": str(commission_id), "error_code": exc.code},
                )
            except Exception:
                result.failed += 1
                result.failed_ids.append(str(commission_id))
                logger.exception(
                    "Unexpected error paying commission %s",
                    commission_id,
                    extra={"commission_id": str(commission_id)},
                )
            else:
                result.paid += 1
                result.paid_ids.append(str(commission_id))

        return result
