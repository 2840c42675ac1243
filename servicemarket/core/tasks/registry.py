"""
Scheduled Task Registry - Single source of truth for periodic tasks.

Every periodic job in Service Market is defined once here, regardless of
how it is triggered:

    - Celery Beat (django-celery-beat DatabaseScheduler)
    - System cron invoking the management command directly

Each definition carries everything either backend needs:
    - Task identifier and human-readable name
    - Celery task name (for Beat)
    - Management command and arguments (for cron)
    - Cron expression
    - Description and enabled status

Usage:

    from servicemarket.core.tasks.registry import SCHEDULED_TASKS
    from servicemarket.core.tasks.registry import get_tasks_for_backend

    for task in get_tasks_for_backend("celery"):
        print(f"{task.name}: {task.schedule_cron}")

The registry is consumed by the ``sync_schedules`` management command, which
creates the PeriodicTask rows for Beat or prints crontab lines.
"""

from dataclasses import dataclass
from dataclasses import field
from enum import StrEnum


class Backend(StrEnum):
    """Execution backend for scheduled tasks."""

    CELERY = "celery"  # Celery Beat with DatabaseScheduler
    CRON = "cron"  # crontab entries calling manage.py
    ALL = "all"


@dataclass(frozen=True)
class ScheduledTaskDefinition:
    """
    Definition of a scheduled task.

    Contains all information needed to register the task with Celery Beat
    or to render a crontab line for it.
    """

    # Identity
    id: str  # Unique identifier, e.g., "expire-subscriptions"
    name: str  # Human-readable name, also the PeriodicTask name

    # Celery configuration
    celery_task: str  # Registered task name, e.g., "servicemarket.expire_subscriptions"

    # Cron configuration
    command: str  # Management command name
    schedule_cron: str  # Cron expression, e.g., "0 * * * *"
    command_args: tuple[str, ...] = ()

    # Metadata
    description: str = ""
    enabled: bool = True

    backends: tuple[Backend, ...] = field(default=(Backend.ALL,))

    def supports_backend(self, backend: Backend) -> bool:
        """Check if this task should run on the given backend."""
        if Backend.ALL in self.backends:
            return True
        return backend in self.backends

    @property
    def crontab_line(self) -> str:
        args = " ".join(self.command_args)
        command = f"python manage.py {self.command} {args}".strip()
        return f"{self.schedule_cron} {command}"


# =============================================================================
# SCHEDULED TASK DEFINITIONS
# =============================================================================

SCHEDULED_TASKS: tuple[ScheduledTaskDefinition, ...] = (
    # -------------------------------------------------------------------------
    # Subscription lifecycle
    # -------------------------------------------------------------------------
    ScheduledTaskDefinition(
        id="expire-subscriptions",
        name="Expire Subscriptions",
        celery_task="servicemarket.expire_subscriptions",
        command="expire_subscriptions",
        schedule_cron="0 * * * *",  # Hourly at :00
        description=(
            "Attempt due auto-renewals (if enabled), then expire active subscriptions "
            "whose period has ended"
        ),
    ),
    ScheduledTaskDefinition(
        id="send-renewal-reminders",
        name="Send Renewal Reminders",
        celery_task="servicemarket.send_renewal_reminders",
        command="send_renewal_reminders",
        schedule_cron="0 9 * * *",  # Daily at 9:00 AM
        description="Notify accounts whose subscription ends in 7, 3 or 1 days",
    ),
    ScheduledTaskDefinition(
        id="expire-grace-periods",
        name="Expire Grace Periods",
        celery_task="servicemarket.expire_grace_periods",
        command="expire_grace_periods",
        schedule_cron="0 10 * * *",  # Daily at 10:00 AM
        description="Expire past-due subscriptions once the grace period has ended",
    ),
    # -------------------------------------------------------------------------
    # Referral payouts
    # -------------------------------------------------------------------------
    ScheduledTaskDefinition(
        id="pay-commissions",
        name="Pay Referral Commissions",
        celery_task="servicemarket.pay_commissions",
        command="pay_commissions",
        command_args=("--limit=100",),
        schedule_cron="30 * * * *",  # Hourly at :30
        description="Credit pending referral commissions to referrer wallets",
        # Payouts are operator-driven until auto-payout is switched on.
        enabled=False,
    ),
    # -------------------------------------------------------------------------
    # Ledger audit
    # -------------------------------------------------------------------------
    ScheduledTaskDefinition(
        id="verify-ledgers",
        name="Verify Ledgers",
        celery_task="servicemarket.verify_ledgers",
        command="verify_ledgers",
        schedule_cron="0 3 * * *",  # Daily at 3:00 AM
        description="Report wallets whose balance disagrees with their history",
    ),
)


def get_tasks_for_backend(backend: Backend | str) -> list[ScheduledTaskDefinition]:
    """
    Get all tasks that should run on the specified backend.

    Args:
        backend: The backend to filter for (Backend enum or string)

    Returns:
        List of task definitions for that backend
    """
    if isinstance(backend, str):
        backend = Backend(backend)

    return [task for task in SCHEDULED_TASKS if task.supports_backend(backend)]


def get_task_by_id(task_id: str) -> ScheduledTaskDefinition | None:
    for task in SCHEDULED_TASKS:
        if task.id == task_id:
            return task
    return None


def get_enabled_tasks() -> list[ScheduledTaskDefinition]:
    """Get all enabled task definitions."""
    return [task for task in SCHEDULED_TASKS if task.enabled]
