"""
Celery tasks for the scheduled subscription, referral and ledger jobs.

Architecture:
    1. Beat scheduler triggers tasks on schedule (DatabaseScheduler)
    2. Broker (Redis) queues the task messages
    3. Worker (celery worker) processes the tasks

Schedules are installed from servicemarket.core.tasks.registry with
``python manage.py sync_schedules --backend=celery``.

Each task wraps a Django management command, so the same work can be run
from cron or by hand, and gets:
    - Automatic retries on transient failures (DB/network issues)
    - Logging of the command summary

Duplicate deliveries are safe: every scan takes a SchedulerLease and every
row transition re-checks state under a row lock.
"""

import logging
from datetime import UTC
from datetime import datetime
from io import StringIO

from celery import shared_task
from django.core.management import call_command
from django.db import OperationalError

logger = logging.getLogger(__name__)

# Exceptions that indicate transient failures worth retrying.
RETRYABLE_EXCEPTIONS = (
    OperationalError,  # Database connection issues
    ConnectionError,  # Network issues
    TimeoutError,
)


def _run_management_command(command_name: str, *args: str) -> dict:
    """
    Run a Django management command and return its captured output.

    Exceptions propagate so Celery's autoretry_for can handle them.
    """
    out = StringIO()
    err = StringIO()

    call_command(command_name, *args, stdout=out, stderr=err)

    result = {
        "status": "completed",
        "command": command_name,
        "output": out.getvalue().strip(),
        "timestamp": datetime.now(tz=UTC).isoformat(),
    }
    errors = err.getvalue().strip()
    if errors:
        result["errors"] = errors
    return result


# =============================================================================
# SCHEDULED TASKS
# =============================================================================
# Default schedules:
#   expire_subscriptions     - Hourly at :00 (opt-in renewals, then hard expiry)
#   send_renewal_reminders   - Daily at 9:00 AM
#   expire_grace_periods     - Daily at 10:00 AM
#   pay_commissions          - Hourly at :30 (disabled by default)
#   verify_ledgers           - Daily at 3:00 AM


@shared_task(
    bind=True,
    name="servicemarket.expire_subscriptions",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,  # Exponential backoff starting at 60s
    retry_backoff_max=600,  # Max 10 minutes between retries
    acks_late=True,
)
def expire_subscriptions(self) -> dict:
    """
    Hourly subscription tick.

    Attempts due auto-renewals (when enabled) and then expires active
    subscriptions whose current period has ended.

    Default schedule: Hourly at :00
    """
    logger.info(
        "Starting scheduled subscription expiry (task_id=%s)",
        self.request.id,
    )
    result = _run_management_command("expire_subscriptions")
    logger.info("Subscription expiry completed: %s", result.get("output", ""))
    return result


@shared_task(
    bind=True,
    name="servicemarket.send_renewal_reminders",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def send_renewal_reminders(self) -> dict:
    """
    Notify accounts whose subscription ends soon.

    Default schedule: Daily at 9:00 AM
    """
    logger.info(
        "Starting scheduled renewal reminders (task_id=%s)",
        self.request.id,
    )
    result = _run_management_command("send_renewal_reminders")
    logger.info("Renewal reminders completed: %s", result.get("output", ""))
    return result


@shared_task(
    bind=True,
    name="servicemarket.expire_grace_periods",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def expire_grace_periods(self) -> dict:
    """
    Expire past-due subscriptions whose grace period has ended.

    Default schedule: Daily at 10:00 AM
    """
    logger.info(
        "Starting scheduled grace period expiry (task_id=%s)",
        self.request.id,
    )
    result = _run_management_command("expire_grace_periods")
    logger.info("Grace period expiry completed: %s", result.get("output", ""))
    return result


@shared_task(
    bind=True,
    name="servicemarket.pay_commissions",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def pay_commissions(self) -> dict:
    """
    Credit pending referral commissions to referrer wallets.

    Default schedule: Hourly at :30 (disabled until enabled in admin)
    """
    logger.info(
        "Starting scheduled commission payout (task_id=%s)",
        self.request.id,
    )
    result = _run_management_command("pay_commissions", "--limit=100")
    logger.info("Commission payout completed: %s", result.get("output", ""))
    return result


@shared_task(
    bind=True,
    name="servicemarket.verify_ledgers",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def verify_ledgers(self) -> dict:
    """
    Check every wallet balance against its transaction history.

    Default schedule: Daily at 3:00 AM
    """
    logger.info(
        "Starting scheduled ledger verification (task_id=%s)",
        self.request.id,
    )
    result = _run_management_command("verify_ledgers")
    if result.get("errors"):
        logger.error("Ledger verification found problems: %s", result["errors"])
    else:
        logger.info("Ledger verification completed: %s", result.get("output", ""))
    return result
