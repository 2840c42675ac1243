"""
Clock-driven subscription transitions.

The ExpirationScheduler runs four scans, each from a management command
(and the Celery task wrapping it):

    renew_due()               hourly before expiry, if enabled: charge
                              auto-renewing subscriptions whose period ended
    expire_overdue()          hourly: ACTIVE past period end → EXPIRED
    send_renewal_reminders()  daily: remind 7/3/1 days before period end
    expire_past_due()         daily: PAST_DUE past the grace period → EXPIRED

Every scan:
    - holds a SchedulerLease for its name, so overlapping runs skip
    - collects candidate ids, then handles each row in its own transaction
      after re-reading it with select_for_update and re-checking its status
    - logs and counts a failing row, then moves on
    - checks ``should_stop`` between rows so a shutdown finishes the
      current row and stops cleanly

Notifications are sent after the row's transaction commits and never fail
the row.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import time
from datetime import timedelta
from typing import Any
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.db.models import Count
from django.db.models import Q
from django.db.models import QuerySet
from django.utils import timezone

from servicemarket.accounts.constants import PaymentStatus
from servicemarket.accounts.services import AccountStatusToggle
from servicemarket.accounts.services import get_account_status_toggle
from servicemarket.billing.constants import EXPIRATION_STATS_WINDOW_DAYS
from servicemarket.billing.constants import EXPIRING_SOON_DAYS
from servicemarket.billing.constants import LEASE_EXPIRE_OVERDUE
from servicemarket.billing.constants import LEASE_EXPIRE_PAST_DUE
from servicemarket.billing.constants import LEASE_RENEW_DUE
from servicemarket.billing.constants import LEASE_RENEWAL_REMINDERS
from servicemarket.billing.constants import SubscriptionStatus
from servicemarket.billing.gateways import ChargeResult
from servicemarket.billing.gateways import PaymentProcessor
from servicemarket.billing.gateways import get_payment_processor
from servicemarket.billing.models import Subscription
from servicemarket.billing.models import SubscriptionReminder
from servicemarket.billing.services import add_interval
from servicemarket.core.exceptions import InvalidStateError
from servicemarket.core.exceptions import NotFoundError
from servicemarket.core.exceptions import UpstreamFailureError
from servicemarket.core.leases import LeaseUnavailableError
from servicemarket.core.leases import single_flight
from servicemarket.notifications.models import Notification
from servicemarket.notifications.senders import NotificationSender
from servicemarket.notifications.senders import get_notification_sender
from servicemarket.notifications.senders import notify_safely

logger = logging.getLogger(__name__)

ShouldStop = Callable[[], bool]


def _never_stop() -> bool:
    return False


@dataclass
class ScanResult:
    """Counts for one scan run."""

    processed: int = 0
    failed: int = 0
    skipped: int = 0
    stopped: bool = False
    lease_unavailable: bool = False

    def merge(self, other: ScanResult) -> None:
        self.processed += other.processed
        self.failed += other.failed
        self.skipped += other.skipped
        self.stopped = self.stopped or other.stopped
        self.lease_unavailable = self.lease_unavailable or other.lease_unavailable

    def summary(self) -> str:
        text = f"{self.processed} processed, {self.skipped} skipped, {self.failed} failed"
        if self.lease_unavailable:
            text += " (another run holds the lease)"
        if self.stopped:
            text += " (stopped early)"
        return text


@dataclass
class ExpirationStats:
    status_breakdown: dict[str, int] = field(default_factory=dict)
    upcoming_expirations: int = 0
    expired_count: int = 0
    grace_period_days: int = 0


@dataclass(frozen=True)
class _Outcome:
    """What a row handler did, and what to send once it committed."""

    changed: bool
    notification: tuple[str, dict[str, Any]] | None = None


_UNCHANGED = _Outcome(changed=False)


def _payload(subscription: Subscription, **extra) -> dict[str, Any]:
    return {
        "subscription_id": str(subscription.pk),
        "plan_id": subscription.plan_id,
        "plan_name": subscription.plan.name,
        "period_end": subscription.current_period_end.isoformat(),
        **extra,
    }


def renewal_reference(subscription: Subscription) -> str:
    """Charge reference, stable for one billing cycle of a subscription."""
    return f"RENEW_{subscription.pk}_{subscription.current_period_end:%Y%m%d%H%M%S}"


class ExpirationScheduler:
    """
    Runs the periodic subscription scans.

    Collaborators default to the classes named in settings:
    PAYMENT_PROCESSOR_CLASS, NOTIFICATION_SENDER_CLASS and
    ACCOUNT_STATUS_TOGGLE_CLASS.
    """

    def __init__(
        self,
        payment_processor: PaymentProcessor | None = None,
        notifier: NotificationSender | None = None,
        status_toggle: AccountStatusToggle | None = None,
    ):
        self._payment_processor = payment_processor
        self._notifier = notifier
        self._status_toggle = status_toggle

    @property
    def payment_processor(self) -> PaymentProcessor:
        if self._payment_processor is None:
            self._payment_processor = get_payment_processor()
        return self._payment_processor

    @property
    def notifier(self) -> NotificationSender:
        if self._notifier is None:
            self._notifier = get_notification_sender()
        return self._notifier

    @property
    def status_toggle(self) -> AccountStatusToggle:
        if self._status_toggle is None:
            self._status_toggle = get_account_status_toggle()
        return self._status_toggle

    # ------------------------------------------------------------------
    # Candidate querysets (also used by --dry-run)
    # ------------------------------------------------------------------

    def overdue_candidates(self, now: datetime | None = None) -> QuerySet[Subscription]:
        now = now or timezone.now()
        return Subscription.objects.filter(
            status=SubscriptionStatus.ACTIVE,
            current_period_end__lt=now,
        ).order_by("current_period_end")

    def reminder_candidates(
        self,
        lead_days: int,
        now: datetime | None = None,
    ) -> QuerySet[Subscription]:
        """Active subscriptions ending on the calendar day ``lead_days`` ahead."""
        day_start, day_end = self._day_window(lead_days, now)
        return Subscription.objects.filter(
            status=SubscriptionStatus.ACTIVE,
            current_period_end__gte=day_start,
            current_period_end__lt=day_end,
        ).order_by("current_period_end")

    def past_due_candidates(self, now: datetime | None = None) -> QuerySet[Subscription]:
        return Subscription.objects.filter(
            status=SubscriptionStatus.PAST_DUE,
            current_period_end__lt=self._grace_cutoff(now),
        ).order_by("current_period_end")

    def renewal_candidates(self, now: datetime | None = None) -> QuerySet[Subscription]:
        now = now or timezone.now()
        retry_before = now - timedelta(minutes=settings.SUBSCRIPTION_RENEWAL_RETRY_MINUTES)
        return Subscription.objects.filter(
            Q(renewal_attempted_at__isnull=True) | Q(renewal_attempted_at__lt=retry_before),
            status=SubscriptionStatus.ACTIVE,
            auto_renew=True,
            current_period_end__lte=self._renewal_horizon(now),
        ).order_by("current_period_end")

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def expire_overdue(
        self,
        now: datetime | None = None,
        should_stop: ShouldStop = _never_stop,
    ) -> ScanResult:
        """Expire active subscriptions whose period has ended."""
        now = now or timezone.now()
        return self._run_scan(
            LEASE_EXPIRE_OVERDUE,
            self.overdue_candidates(now),
            lambda pk: self._expire_overdue_one(pk, now),
            should_stop,
        )

    def send_renewal_reminders(
        self,
        now: datetime | None = None,
        should_stop: ShouldStop = _never_stop,
    ) -> ScanResult:
        """
        Remind accounts whose subscription ends in one of
        SUBSCRIPTION_REMINDER_DAYS days. Never changes subscription state.
        """
        now = now or timezone.now()
        result = ScanResult()
        try:
            with single_flight(LEASE_RENEWAL_REMINDERS):
                for lead_days in settings.SUBSCRIPTION_REMINDER_DAYS:
                    day_start, day_end = self._day_window(lead_days, now)
                    result.merge(
                        self._process_rows(
                            self.reminder_candidates(lead_days, now),
                            lambda pk, lead=lead_days, start=day_start, end=day_end: (
                                self._remind_one(pk, lead, start, end)
                            ),
                            should_stop,
                        ),
                    )
                    if result.stopped:
                        break
        except LeaseUnavailableError as exc:
            logger.info("Skipping renewal reminders: %s", exc.detail)
            result.lease_unavailable = True

        logger.info("Renewal reminder scan: %s", result.summary())
        return result

    def expire_past_due(
        self,
        now: datetime | None = None,
        should_stop: ShouldStop = _never_stop,
    ) -> ScanResult:
        """Expire past-due subscriptions whose grace period has ended."""
        now = now or timezone.now()
        cutoff = self._grace_cutoff(now)
        return self._run_scan(
            LEASE_EXPIRE_PAST_DUE,
            self.past_due_candidates(now),
            lambda pk: self._expire_past_due_one(pk, now, cutoff),
            should_stop,
        )

    def renew_due(
        self,
        now: datetime | None = None,
        should_stop: ShouldStop = _never_stop,
    ) -> ScanResult:
        """Charge auto-renewing subscriptions that reached their renewal time."""
        now = now or timezone.now()
        return self._run_scan(
            LEASE_RENEW_DUE,
            self.renewal_candidates(now),
            lambda pk: self._renew_one(pk, now),
            should_stop,
        )

    def run_hourly(
        self,
        now: datetime | None = None,
        should_stop: ShouldStop = _never_stop,
    ) -> dict[str, ScanResult]:
        """The hourly tick: renewals (when enabled), then hard expiry."""
        results = {}
        if settings.SUBSCRIPTION_AUTO_RENEW_ENABLED:
            results["renewed"] = self.renew_due(now=now, should_stop=should_stop)
            if results["renewed"].stopped:
                return results
        results["expired"] = self.expire_overdue(now=now, should_stop=should_stop)
        return results

    def renew_subscription(
        self,
        subscription_id: UUID | str,
        now: datetime | None = None,
    ) -> Subscription:
        """
        Charge one active or past-due subscription now.

        Used to retry a past-due subscription once the account holder has
        fixed their payment details.

        Raises:
            NotFoundError: If the subscription does not exist.
            InvalidStateError: If it is neither active nor past due.
        """
        now = now or timezone.now()
        try:
            subscription = Subscription.objects.get(pk=subscription_id)
        except Subscription.DoesNotExist:
            raise NotFoundError(
                detail=f"Subscription {subscription_id} not found.",
                code="subscription_not_found",
            ) from None

        if subscription.status not in (
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PAST_DUE,
        ):
            raise InvalidStateError(
                detail=f"Cannot renew a subscription that is {subscription.status}.",
                code="subscription_not_renewable",
                status=subscription.status,
            )

        self._renew_one(subscription.pk, now, manual=True)
        subscription.refresh_from_db()
        return subscription

    def expiration_stats(self, now: datetime | None = None) -> ExpirationStats:
        """Status counts for subscriptions ending in the next 30 days, and more."""
        now = now or timezone.now()
        window_end = now + timedelta(days=EXPIRATION_STATS_WINDOW_DAYS)
        rows = (
            Subscription.objects.filter(current_period_end__lte=window_end)
            .values("status")
            .annotate(count=Count("pk"))
            .order_by("status")
        )
        return ExpirationStats(
            status_breakdown={row["status"]: row["count"] for row in rows},
            upcoming_expirations=Subscription.objects.filter(
                status=SubscriptionStatus.ACTIVE,
                current_period_end__gte=now,
                current_period_end__lte=now + timedelta(days=EXPIRING_SOON_DAYS),
            ).count(),
            expired_count=Subscription.objects.filter(
                status=SubscriptionStatus.EXPIRED,
            ).count(),
            grace_period_days=settings.SUBSCRIPTION_GRACE_PERIOD_DAYS,
        )

    # ------------------------------------------------------------------
    # Scan plumbing
    # ------------------------------------------------------------------

    def _run_scan(
        self,
        lease_name: str,
        candidates: QuerySet[Subscription],
        handler: Callable[[Any], _Outcome],
        should_stop: ShouldStop,
    ) -> ScanResult:
        try:
            with single_flight(lease_name):
                result = self._process_rows(candidates, handler, should_stop)
        except LeaseUnavailableError as exc:
            logger.info("Skipping scan %s: %s", lease_name, exc.detail)
            return ScanResult(lease_unavailable=True)

        logger.info("Scan %s: %s", lease_name, result.summary())
        return result

    def _process_rows(
        self,
        candidates: QuerySet[Subscription],
        handler: Callable[[Any], _Outcome],
        should_stop: ShouldStop,
    ) -> ScanResult:
        result = ScanResult()
        ids: Iterable[Any] = list(
            candidates.values_list("pk", flat=True)[: settings.SUBSCRIPTION_SCAN_BATCH_SIZE],
        )
        for pk in ids:
            if should_stop():
                logger.info("Stop requested; ending scan early")
                result.stopped = True
                break
            try:
                outcome = handler(pk)
            except Exception:
                result.failed += 1
                logger.exception(
                    "Failed to process subscription %s",
                    pk,
                    extra={"subscription_id": str(pk)},
                )
                continue

            if outcome.changed:
                result.processed += 1
            else:
                result.skipped += 1
        return result

    def _notify(self, subscription: Subscription, outcome: _Outcome) -> None:
        if outcome.notification is None:
            return
        kind, payload = outcome.notification
        notify_safely(self.notifier, subscription.account, kind, payload)

    @staticmethod
    def _lock(pk) -> Subscription:
        return (
            Subscription.objects.select_for_update(of=("self",))
            .select_related("plan")
            .get(pk=pk)
        )

    @staticmethod
    def _still_covered(subscription: Subscription, now: datetime) -> bool:
        """True if another active subscription of the account covers ``now``."""
        return (
            Subscription.objects.filter(
                account_id=subscription.account_id,
                status=SubscriptionStatus.ACTIVE,
                current_period_end__gt=now,
            )
            .exclude(pk=subscription.pk)
            .exists()
        )

    def _day_window(self, lead_days: int, now: datetime | None) -> tuple[datetime, datetime]:
        now = now or timezone.now()
        target = timezone.localtime(now).date() + timedelta(days=lead_days)
        day_start = timezone.make_aware(datetime.combine(target, time.min))
        return day_start, day_start + timedelta(days=1)

    @staticmethod
    def _grace_cutoff(now: datetime | None) -> datetime:
        now = now or timezone.now()
        return now - timedelta(days=settings.SUBSCRIPTION_GRACE_PERIOD_DAYS)

    @staticmethod
    def _renewal_horizon(now: datetime) -> datetime:
        return now + timedelta(hours=settings.SUBSCRIPTION_RENEWAL_LEAD_HOURS)

    # ------------------------------------------------------------------
    # Row handlers
    # ------------------------------------------------------------------

    def _expire(
        self,
        subscription: Subscription,
        now: datetime,
        kind: str,
    ) -> _Outcome:
        """Mark a locked subscription expired and lower the account's status."""
        subscription.status = SubscriptionStatus.EXPIRED
        subscription.expired_at = now
        subscription.save(update_fields=["status", "expired_at", "modified"])

        if not self._still_covered(subscription, now):
            self.status_toggle.set_payment_status(
                subscription.account_id,
                PaymentStatus.PENDING,
            )
        return _Outcome(changed=True, notification=(kind, _payload(subscription)))

    def _expire_overdue_one(self, pk, now: datetime) -> _Outcome:
        with transaction.atomic():
            subscription = self._lock(pk)
            if (
                subscription.status != SubscriptionStatus.ACTIVE
                or subscription.current_period_end >= now
            ):
                return _UNCHANGED
            outcome = self._expire(
                subscription,
                now,
                Notification.Type.SUBSCRIPTION_EXPIRED,
            )

        logger.info(
            "Expired subscription %s (period ended %s)",
            subscription.pk,
            subscription.current_period_end.isoformat(),
            extra={
                "subscription_id": str(subscription.pk),
                "account_id": str(subscription.account_id),
            },
        )
        self._notify(subscription, outcome)
        return outcome

    def _expire_past_due_one(self, pk, now: datetime, cutoff: datetime) -> _Outcome:
        with transaction.atomic():
            subscription = self._lock(pk)
            if (
                subscription.status != SubscriptionStatus.PAST_DUE
                or subscription.current_period_end >= cutoff
            ):
                return _UNCHANGED
            outcome = self._expire(
                subscription,
                now,
                Notification.Type.SUBSCRIPTION_GRACE_PERIOD_EXPIRED,
            )

        logger.info(
            "Expired past-due subscription %s after grace period",
            subscription.pk,
            extra={
                "subscription_id": str(subscription.pk),
                "account_id": str(subscription.account_id),
            },
        )
        self._notify(subscription, outcome)
        return outcome

    def _remind_one(
        self,
        pk,
        lead_days: int,
        day_start: datetime,
        day_end: datetime,
    ) -> _Outcome:
        with transaction.atomic():
            subscription = self._lock(pk)
            if subscription.status != SubscriptionStatus.ACTIVE or not (
                day_start <= subscription.current_period_end < day_end
            ):
                return _UNCHANGED

            _reminder, created = SubscriptionReminder.objects.get_or_create(
                subscription=subscription,
                lead_days=lead_days,
                period_end=subscription.current_period_end,
            )
            if not created:
                return _UNCHANGED

        outcome = _Outcome(
            changed=True,
            notification=(
                Notification.Type.SUBSCRIPTION_EXPIRING,
                _payload(subscription, days_until_expiration=lead_days),
            ),
        )
        logger.info(
            "Sent %d-day renewal reminder for subscription %s",
            lead_days,
            subscription.pk,
            extra={"subscription_id": str(subscription.pk)},
        )
        self._notify(subscription, outcome)
        return outcome

    def _renew_one(self, pk, now: datetime, *, manual: bool = False) -> _Outcome:
        """
        Attempt one renewal charge.

        The attempt is stamped and committed before charging, so a crash
        mid-charge is retried only after SUBSCRIPTION_RENEWAL_RETRY_MINUTES.
        The outcome is applied only if the subscription is still in the
        cycle that was charged.
        """
        retry_before = now - timedelta(minutes=settings.SUBSCRIPTION_RENEWAL_RETRY_MINUTES)
        with transaction.atomic():
            subscription = self._lock(pk)
            if manual:
                eligible = subscription.status in (
                    SubscriptionStatus.ACTIVE,
                    SubscriptionStatus.PAST_DUE,
                )
            else:
                eligible = (
                    subscription.status == SubscriptionStatus.ACTIVE
                    and subscription.auto_renew
                    and subscription.current_period_end <= self._renewal_horizon(now)
                    and (
                        subscription.renewal_attempted_at is None
                        or subscription.renewal_attempted_at < retry_before
                    )
                )
            if not eligible:
                return _UNCHANGED

            subscription.renewal_attempted_at = now
            subscription.save(update_fields=["renewal_attempted_at", "modified"])

        charged_period_end = subscription.current_period_end
        amount = subscription.plan.price
        reference = renewal_reference(subscription)
        try:
            charge = self.payment_processor.charge(subscription.account_id, amount, reference)
        except UpstreamFailureError as exc:
            logger.warning(
                "Renewal charge %s failed upstream: %s",
                reference,
                exc.detail,
                extra={"subscription_id": str(subscription.pk)},
            )
            charge = ChargeResult(success=False, reference=reference, message=exc.detail)

        with transaction.atomic():
            subscription = self._lock(pk)
            same_cycle = subscription.current_period_end == charged_period_end
            if not same_cycle or subscription.status not in (
                SubscriptionStatus.ACTIVE,
                SubscriptionStatus.PAST_DUE,
            ):
                logger.warning(
                    "Subscription %s changed during renewal charge %s; result not applied",
                    subscription.pk,
                    reference,
                    extra={"subscription_id": str(subscription.pk)},
                )
                return _UNCHANGED

            if charge.success:
                outcome = self._apply_renewal(subscription, now, charge)
            else:
                outcome = self._apply_renewal_failure(subscription, charge)

        self._notify(subscription, outcome)
        return outcome

    def _apply_renewal(
        self,
        subscription: Subscription,
        now: datetime,
        charge: ChargeResult,
    ) -> _Outcome:
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.current_period_start = now
        subscription.current_period_end = add_interval(now, subscription.plan.interval)
        subscription.price = subscription.plan.price
        subscription.renewal_attempted_at = None
        subscription.save(
            update_fields=[
                "status",
                "current_period_start",
                "current_period_end",
                "price",
                "renewal_attempted_at",
                "modified",
            ],
        )
        self.status_toggle.set_payment_status(subscription.account_id, PaymentStatus.PAID)

        logger.info(
            "Renewed subscription %s until %s (charge %s)",
            subscription.pk,
            subscription.current_period_end.isoformat(),
            charge.reference,
            extra={"subscription_id": str(subscription.pk)},
        )
        return _Outcome(
            changed=True,
            notification=(
                Notification.Type.SUBSCRIPTION_RENEWED,
                _payload(
                    subscription,
                    amount=str(subscription.price),
                    charge_reference=charge.reference,
                ),
            ),
        )

    def _apply_renewal_failure(
        self,
        subscription: Subscription,
        charge: ChargeResult,
    ) -> _Outcome:
        subscription.status = SubscriptionStatus.PAST_DUE
        subscription.save(update_fields=["status", "modified"])

        logger.warning(
            "Renewal of subscription %s declined: %s",
            subscription.pk,
            charge.message or "no reason given",
            extra={"subscription_id": str(subscription.pk)},
        )
        return _Outcome(
            changed=True,
            notification=(
                Notification.Type.SUBSCRIPTION_RENEWAL_FAILED,
                _payload(
                    subscription,
                    amount=str(subscription.plan.price),
                    reason=charge.message,
                    grace_period_days=settings.SUBSCRIPTION_GRACE_PERIOD_DAYS,
                ),
            ),
        )
