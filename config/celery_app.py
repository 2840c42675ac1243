"""
Celery application configuration for Service Market.

This module configures Celery for background task processing. Tasks are
defined using the @shared_task decorator so they also work with
CELERY_TASK_ALWAYS_EAGER in tests.

Components:
  - Worker: Processes background tasks (`celery -A config worker`)
  - Beat: Triggers the subscription scans (`celery -A config beat`)

Configuration:
  - Broker: Redis (CELERY_BROKER_URL)
  - Result backend: None (fire-and-forget, all state in Django models)
  - Task serialization: JSON
  - Periodic tasks: django-celery-beat with DatabaseScheduler

Usage:
    # Run worker
    celery -A config worker --loglevel=info --concurrency=1

    # Run beat scheduler
    celery -A config beat --loglevel=info \\
        --scheduler django_celery_beat.schedulers:DatabaseScheduler

The beat schedule itself is installed with `python manage.py sync_schedules
--backend=celery` from servicemarket.core.tasks.registry.
"""

import logging
import os

from celery import Celery

logger = logging.getLogger(__name__)

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.local")

app = Celery("servicemarket")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()


@app.task(bind=True, ignore_result=True)
def debug_task(self):
    """Debug task for testing Celery connectivity."""
    logger.info("Debug task received: %r", self.request)
