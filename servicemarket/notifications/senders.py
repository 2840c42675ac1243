"""
Notification senders.

Billing and referral code never talks to a delivery channel directly. It
calls a ``NotificationSender`` with an account, a notification kind and a
JSON-safe payload. The default sender stores an in-app ``Notification``
row; deployments can swap in their own via NOTIFICATION_SENDER_CLASS.

Notifications are best-effort. Callers go through ``notify_safely``, which
logs and swallows sender failures so a broken channel never rolls back or
blocks a subscription transition.

Usage:
    sender = get_notification_sender()
    notify_safely(
        sender,
        account,
        Notification.Type.SUBSCRIPTION_EXPIRED,
        {"subscription_id": str(sub.pk), "plan_name": sub.plan.name},
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any
from typing import Protocol

from django.conf import settings
from django.utils.module_loading import import_string

from servicemarket.notifications.models import Notification

if TYPE_CHECKING:
    from servicemarket.accounts.models import Account

logger = logging.getLogger(__name__)


def _days(count: int) -> str:
    return f"{count} Day" if count == 1 else f"{count} Days"


# Title and body per kind. Bodies are formatted with the payload plus
# ``plan`` (plan name or "subscription") and ``days_label``.
TEMPLATES: dict[str, tuple[str, str]] = {
    Notification.Type.SUBSCRIPTION_EXPIRED: (
        "Subscription Expired",
        "Your {plan} has expired. Please renew to continue using premium features.",
    ),
    Notification.Type.SUBSCRIPTION_EXPIRING: (
        "Subscription Expires in {days_label}",
        "Your {plan} will expire in {days_label_lower}. "
        "Please renew to avoid service interruption.",
    ),
    Notification.Type.SUBSCRIPTION_GRACE_PERIOD_EXPIRED: (
        "Grace Period Ended - Subscription Expired",
        "Your {plan} grace period has ended. Your subscription is now expired "
        "and premium features are disabled.",
    ),
    Notification.Type.SUBSCRIPTION_RENEWED: (
        "Subscription Renewed",
        "Your {plan} has been renewed.",
    ),
    Notification.Type.SUBSCRIPTION_RENEWAL_FAILED: (
        "Subscription Renewal Failed",
        "We could not renew your {plan}. Please update your payment details "
        "before the grace period ends.",
    ),
    Notification.Type.COMMISSION_PAID: (
        "Referral Commission Paid",
        "A referral commission of {amount} has been paid to your wallet.",
    ),
}


class NotificationSender(Protocol):
    """Delivers a notification of ``kind`` to an account."""

    def notify(self, account: Account, kind: str, payload: dict[str, Any]) -> None: ...


class DatabaseNotificationSender:
    """Stores notifications as in-app ``Notification`` rows."""

    def notify(self, account: Account, kind: str, payload: dict[str, Any]) -> None:
        title, body = render(kind, payload)
        notification = Notification.objects.create(
            account=account,
            type=kind,
            title=title,
            body=body,
            payload=payload,
        )
        logger.info(
            "Notification %s (%s) created for account %s",
            notification.pk,
            kind,
            account.pk,
            extra={"account_id": str(account.pk), "notification_type": kind},
        )


def render(kind: str, payload: dict[str, Any]) -> tuple[str, str]:
    """Return the (title, body) for a notification kind."""
    title_template, body_template = TEMPLATES.get(kind, ("Notification", ""))
    days = payload.get("days_until_expiration")
    context = {
        **payload,
        "plan": payload.get("plan_name") or "subscription",
        "days_label": _days(days) if days is not None else "",
        "days_label_lower": _days(days).lower() if days is not None else "",
    }
    return title_template.format(**context), body_template.format(**context)


def get_notification_sender() -> NotificationSender:
    """Instantiate the sender configured by NOTIFICATION_SENDER_CLASS."""
    return import_string(settings.NOTIFICATION_SENDER_CLASS)()


def notify_safely(
    sender: NotificationSender,
    account: Account,
    kind: str,
    payload: dict[str, Any],
) -> bool:
    """
    Send a notification, logging instead of raising on failure.

    Returns True if the sender accepted the notification.
    """
    try:
        sender.notify(account, kind, payload)
    except Exception:
        logger.exception(
            "Failed to send %s notification to account %s",
            kind,
            account.pk,
            extra={"account_id": str(account.pk), "notification_type": kind},
        )
        return False
    return True
