"""
Subscription lifecycle service.

Creates, cancels and reactivates subscriptions and answers "what is this
account subscribed to?". Automatic transitions driven by the clock
(expiry, renewal, grace periods) live in servicemarket.billing.expiration.

Every transition runs inside ``transaction.atomic()`` and re-reads the row
with ``select_for_update`` before checking its status, so concurrent
requests and retried tasks apply each transition at most once.

Usage:
    service = SubscriptionService()
    subscription = service.create_subscription(account, "pro-plan")
    service.cancel_subscription(subscription.pk)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING
from typing import Any
from uuid import UUID

from dateutil.relativedelta import relativedelta
from django.db import transaction
from django.utils import timezone
from pydantic import ValidationError

from servicemarket.accounts.constants import PaymentStatus
from servicemarket.accounts.services import AccountStatusToggle
from servicemarket.accounts.services import get_account_status_toggle
from servicemarket.billing.constants import CANCELLABLE_STATUSES
from servicemarket.billing.constants import REACTIVATABLE_STATUSES
from servicemarket.billing.constants import PlanInterval
from servicemarket.billing.constants import SubscriptionStatus
from servicemarket.billing.metadata import BaseSubscriptionMetadata
from servicemarket.billing.metadata import dump_subscription_metadata
from servicemarket.billing.models import Plan
from servicemarket.billing.models import Subscription
from servicemarket.core.exceptions import InactivePlanError
from servicemarket.core.exceptions import InvalidRequestError
from servicemarket.core.exceptions import InvalidStateError
from servicemarket.core.exceptions import NotFoundError

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from servicemarket.accounts.models import Account

logger = logging.getLogger(__name__)

INTERVAL_DELTAS = {
    PlanInterval.MONTHLY: relativedelta(months=1),
    PlanInterval.YEARLY: relativedelta(years=1),
}


def add_interval(start: datetime, interval: str) -> datetime:
    """
    End of a billing period starting at ``start``.

    Calendar arithmetic: Jan 31 + 1 month is Feb 28 (or 29), Feb 29 + 1 year
    is Feb 28.
    """
    return start + INTERVAL_DELTAS[PlanInterval(interval)]


def _enqueue_commission(subscription_id: UUID) -> None:
    # Imported here: referrals depends on billing models.
    from servicemarket.referrals.tasks import process_commission_task

    try:
        process_commission_task.delay(str(subscription_id))
    except Exception:
        logger.exception(
            "Failed to enqueue commission processing for subscription %s",
            subscription_id,
            extra={"subscription_id": str(subscription_id)},
        )


class SubscriptionService:
    """User-initiated subscription transitions and queries."""

    def __init__(self, status_toggle: AccountStatusToggle | None = None):
        self._status_toggle = status_toggle

    @property
    def status_toggle(self) -> AccountStatusToggle:
        if self._status_toggle is None:
            self._status_toggle = get_account_status_toggle()
        return self._status_toggle

    def create_subscription(
        self,
        account: Account,
        plan: Plan | str,
        metadata: BaseSubscriptionMetadata | dict[str, Any] | None = None,
    ) -> Subscription:
        """
        Start an active subscription for ``account`` on ``plan``.

        The period runs from now for one plan interval. The plan price is
        captured on the subscription and the account is marked paid.
        Commission processing for the account's referrer is queued once the
        transaction commits and never affects the returned subscription.

        Raises:
            NotFoundError: If the plan does not exist.
            InactivePlanError: If the plan is no longer offered.
            InvalidRequestError: If metadata does not validate.
        """
        plan_slug = plan.pk if isinstance(plan, Plan) else plan
        try:
            plan = Plan.objects.get(pk=plan_slug)
        except Plan.DoesNotExist:
            raise NotFoundError(
                detail=f"Subscription plan {plan_slug!r} not found.",
                code="plan_not_found",
            ) from None

        if not plan.is_active:
            raise InactivePlanError

        try:
            stored_metadata = dump_subscription_metadata(metadata)
        except ValidationError as exc:
            raise InvalidRequestError(
                detail=f"Invalid subscription metadata: {exc}",
                code="invalid_metadata",
            ) from exc

        now = timezone.now()
        with transaction.atomic():
            subscription = Subscription.objects.create(
                account=account,
                plan=plan,
                status=SubscriptionStatus.ACTIVE,
                current_period_start=now,
                current_period_end=add_interval(now, plan.interval),
                auto_renew=True,
                price=plan.price,
                metadata=stored_metadata,
            )
            self.status_toggle.set_payment_status(account.pk, PaymentStatus.PAID)
            transaction.on_commit(lambda: _enqueue_commission(subscription.pk))

        logger.info(
            "Created subscription %s for account %s on plan %s until %s",
            subscription.pk,
            account.pk,
            plan.pk,
            subscription.current_period_end.isoformat(),
            extra={
                "subscription_id": str(subscription.pk),
                "account_id": str(account.pk),
                "plan": plan.pk,
            },
        )
        return subscription

    def cancel_subscription(self, subscription_id: UUID | str) -> Subscription:
        """
        Cancel an active or past-due subscription and turn off auto-renew.

        Cancelling an already cancelled subscription is a no-op. If the
        account has no other active subscription it is marked pending.

        Raises:
            NotFoundError: If the subscription does not exist.
            InvalidStateError: If the subscription has expired.
        """
        with transaction.atomic():
            subscription = self._lock(subscription_id)

            if subscription.status == SubscriptionStatus.CANCELLED:
                logger.info("Subscription %s already cancelled", subscription.pk)
                return subscription

            if subscription.status not in CANCELLABLE_STATUSES:
                raise InvalidStateError(
                    detail=f"Cannot cancel a subscription that is {subscription.status}.",
                    code="subscription_not_cancellable",
                    status=subscription.status,
                )

            subscription.status = SubscriptionStatus.CANCELLED
            subscription.auto_renew = False
            subscription.cancelled_at = timezone.now()
            subscription.save(
                update_fields=["status", "auto_renew", "cancelled_at", "modified"],
            )

            if not self._has_other_active(subscription):
                self.status_toggle.set_payment_status(
                    subscription.account_id,
                    PaymentStatus.PENDING,
                )

        logger.info(
            "Cancelled subscription %s",
            subscription.pk,
            extra={
                "subscription_id": str(subscription.pk),
                "account_id": str(subscription.account_id),
            },
        )
        return subscription

    def reactivate_subscription(self, subscription_id: UUID | str) -> Subscription:
        """
        Make a cancelled (or active) subscription active with auto-renew on.

        Only allowed while the current period has not ended; the period end
        is not changed.

        Raises:
            NotFoundError: If the subscription does not exist.
            InvalidStateError: If the period has ended or the status forbids it.
        """
        with transaction.atomic():
            subscription = self._lock(subscription_id)

            if subscription.status not in REACTIVATABLE_STATUSES:
                raise InvalidStateError(
                    detail=(
                        f"Cannot reactivate a subscription that is {subscription.status}."
                    ),
                    code="subscription_not_reactivatable",
                    status=subscription.status,
                )
            if subscription.current_period_end <= timezone.now():
                raise InvalidStateError(
                    detail="The subscription period has already ended.",
                    code="subscription_period_ended",
                    status=subscription.status,
                )

            subscription.status = SubscriptionStatus.ACTIVE
            subscription.auto_renew = True
            subscription.cancelled_at = None
            subscription.save(
                update_fields=["status", "auto_renew", "cancelled_at", "modified"],
            )
            self.status_toggle.set_payment_status(
                subscription.account_id,
                PaymentStatus.PAID,
            )

        logger.info(
            "Reactivated subscription %s",
            subscription.pk,
            extra={"subscription_id": str(subscription.pk)},
        )
        return subscription

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_active_subscription(self, account: Account) -> Subscription | None:
        """The account's active subscription with the latest period end."""
        return (
            Subscription.objects.select_related("plan")
            .filter(account=account, status=SubscriptionStatus.ACTIVE)
            .order_by("-current_period_end")
            .first()
        )

    def has_active_subscription(self, account: Account) -> bool:
        """True if an active subscription covers the current moment."""
        return Subscription.objects.filter(
            account=account,
            status=SubscriptionStatus.ACTIVE,
            current_period_end__gt=timezone.now(),
        ).exists()

    def get_subscription_history(self, account: Account) -> QuerySet[Subscription]:
        return (
            Subscription.objects.select_related("plan")
            .filter(account=account)
            .order_by("-created")
        )

    def list_plans(self) -> QuerySet[Plan]:
        """Plans open for new subscriptions, cheapest first."""
        return Plan.objects.filter(is_active=True).order_by("price", "display_order")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _lock(subscription_id: UUID | str) -> Subscription:
        try:
            return Subscription.objects.select_for_update().get(pk=subscription_id)
        except Subscription.DoesNotExist:
            raise NotFoundError(
                detail=f"Subscription {subscription_id} not found.",
                code="subscription_not_found",
            ) from None

    @staticmethod
    def _has_other_active(subscription: Subscription) -> bool:
        return (
            Subscription.objects.filter(
                account_id=subscription.account_id,
                status=SubscriptionStatus.ACTIVE,
            )
            .exclude(pk=subscription.pk)
            .exists()
        )
