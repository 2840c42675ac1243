"""
Celery tasks and the scheduled task registry.

Celery's ``autodiscover_tasks()`` looks for ``tasks.py`` (or
``tasks/__init__.py``) in each Django app. Importing the scheduled tasks here
registers them with the worker.

The registry (``registry.py``) is the single source of truth for every
periodic job:

```python
from servicemarket.core.tasks.registry import get_tasks_for_backend

celery_tasks = get_tasks_for_backend("celery")
```
"""

# =============================================================================
# CELERY TASK IMPORTS
# =============================================================================
from servicemarket.core.tasks.registry import SCHEDULED_TASKS
from servicemarket.core.tasks.registry import Backend
from servicemarket.core.tasks.registry import ScheduledTaskDefinition
from servicemarket.core.tasks.registry import get_enabled_tasks
from servicemarket.core.tasks.registry import get_task_by_id
from servicemarket.core.tasks.registry import get_tasks_for_backend
from servicemarket.core.tasks.scheduled_tasks import expire_grace_periods  # noqa: F401
from servicemarket.core.tasks.scheduled_tasks import expire_subscriptions  # noqa: F401
from servicemarket.core.tasks.scheduled_tasks import pay_commissions  # noqa: F401
from servicemarket.core.tasks.scheduled_tasks import send_renewal_reminders  # noqa: F401
from servicemarket.core.tasks.scheduled_tasks import verify_ledgers  # noqa: F401

__all__ = [
    "SCHEDULED_TASKS",
    "Backend",
    "ScheduledTaskDefinition",
    "get_enabled_tasks",
    "get_task_by_id",
    "get_tasks_for_backend",
]
