"""
Celery tasks for the referral app.

``process_commission_task`` is enqueued by SubscriptionService after a new
subscription commits. Commission processing must never affect the
subscription itself, so business errors are logged and swallowed here;
only transient infrastructure errors are retried.
"""

import logging

from celery import shared_task

from servicemarket.core.exceptions import ServiceError
from servicemarket.core.tasks.scheduled_tasks import RETRYABLE_EXCEPTIONS
from servicemarket.referrals.commissions import CommissionEngine

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name="servicemarket.process_commission",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=5,
    retry_backoff=30,
    retry_backoff_max=600,
    acks_late=True,
)
def process_commission_task(self, subscription_id: str) -> str | None:
    """
    Record the referral commission for a newly created subscription.

    Returns the commission id, or None if no commission was due.
    """
    try:
        commission = CommissionEngine().process_commission(subscription_id)
    except ServiceError as exc:
        logger.error(
            "Commission processing failed for subscription %s: %s",
            subscription_id,
            exc.detail,
            extra={
                "subscription_id": str(subscription_id),
                "error_code": exc.code,
                "task_id": self.request.id,
            },
        )
        return None

    return str(commission.pk) if commission else None
