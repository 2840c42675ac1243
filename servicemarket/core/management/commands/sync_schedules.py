"""
Management command to synchronize scheduled task definitions.

Reads the task registry (servicemarket.core.tasks.registry) and installs the
schedule for the chosen backend.

For Celery Beat:
    Creates/updates PeriodicTask + CrontabSchedule rows in the
    django_celery_beat tables.

For cron:
    Prints crontab lines that call the management commands directly.

Usage:
    python manage.py sync_schedules --backend=celery
    python manage.py sync_schedules --backend=celery --dry-run
    python manage.py sync_schedules --backend=cron
    python manage.py sync_schedules --list --format=json
"""

import json
import logging

from django.core.management.base import BaseCommand
from django.core.management.base import CommandError
from django_celery_beat.models import CrontabSchedule
from django_celery_beat.models import PeriodicTask

from servicemarket.core.tasks.registry import SCHEDULED_TASKS
from servicemarket.core.tasks.registry import Backend
from servicemarket.core.tasks.registry import get_tasks_for_backend

logger = logging.getLogger(__name__)

CRON_FIELD_COUNT = 5


class Command(BaseCommand):
    """Synchronize scheduled task definitions with the execution backend."""

    help = "Sync scheduled tasks from the registry to Celery Beat or crontab"

    def add_arguments(self, parser):
        parser.add_argument(
            "--backend",
            type=str,
            choices=[Backend.CELERY.value, Backend.CRON.value],
            help="Target backend to sync schedules for",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be done without making changes",
        )
        parser.add_argument(
            "--list",
            action="store_true",
            dest="list_tasks",
            help="List all registered scheduled tasks",
        )
        parser.add_argument(
            "--format",
            type=str,
            choices=["text", "json"],
            default="text",
            help="Output format (default: text)",
        )

    def handle(self, *args, **options):
        if options["list_tasks"]:
            self._list_tasks(options)
            return

        backend = options.get("backend")
        if not backend:
            self.stderr.write(
                self.style.ERROR("Please specify --backend (celery, cron) or use --list")
            )
            return

        if backend == Backend.CELERY:
            self._sync_celery_beat(options)
        else:
            self._output_crontab()

    def _list_tasks(self, options):
        """List all registered scheduled tasks."""
        if options["format"] == "json":
            tasks_data = [
                {
                    "id": task.id,
                    "name": task.name,
                    "celery_task": task.celery_task,
                    "command": task.command,
                    "command_args": list(task.command_args),
                    "schedule_cron": task.schedule_cron,
                    "description": task.description,
                    "enabled": task.enabled,
                    "backends": [b.value for b in task.backends],
                }
                for task in SCHEDULED_TASKS
            ]
            self.stdout.write(json.dumps(tasks_data, indent=2))
            return

        task_count = len(SCHEDULED_TASKS)
        self.stdout.write(
            self.style.SUCCESS(f"\nRegistered Scheduled Tasks ({task_count} total)\n")
        )
        self.stdout.write("=" * 80)

        for task in SCHEDULED_TASKS:
            status = "✓" if task.enabled else "✗"
            self.stdout.write(f"\n{status} {task.name} ({task.id})")
            self.stdout.write(f"  Schedule:    {task.schedule_cron}")
            self.stdout.write(f"  Celery:      {task.celery_task}")
            self.stdout.write(f"  Command:     {task.command}")
            if task.description:
                self.stdout.write(f"  Description: {task.description}")

        self.stdout.write("\n" + "=" * 80)

    def _sync_celery_beat(self, options):
        """Sync schedules to Celery Beat (django_celery_beat)."""
        dry_run = options["dry_run"]
        tasks = get_tasks_for_backend(Backend.CELERY)
        self.stdout.write(
            self.style.SUCCESS(f"\nSyncing {len(tasks)} tasks to Celery Beat...")
        )

        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN - no changes will be made\n"))

        crontab_cache: dict[str, CrontabSchedule] = {}
        created_count = 0
        updated_count = 0

        for task in tasks:
            self.stdout.write(f"\n  Processing: {task.name}")
            cron_parts = self._parse_cron(task.schedule_cron)

            if dry_run:
                self.stdout.write(f"    Would create/use crontab: {task.schedule_cron}")
                self.stdout.write(f"    Would create/update PeriodicTask: {task.name}")
                self.stdout.write(f"      task: {task.celery_task}")
                continue

            if task.schedule_cron not in crontab_cache:
                crontab_cache[task.schedule_cron], _ = (
                    CrontabSchedule.objects.get_or_create(**cron_parts)
                )
            schedule = crontab_cache[task.schedule_cron]

            periodic_task, created = PeriodicTask.objects.get_or_create(
                name=task.name,
                defaults={
                    "task": task.celery_task,
                    "crontab": schedule,
                    "enabled": task.enabled,
                    "description": task.description,
                },
            )

            if created:
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f"    Created: {task.name}"))
                continue

            # Keep an operator's enable/disable choice; refresh everything else.
            periodic_task.task = task.celery_task
            periodic_task.crontab = schedule
            periodic_task.interval = None
            periodic_task.description = task.description
            periodic_task.save()
            updated_count += 1
            self.stdout.write(f"    Updated: {task.name}")

        self.stdout.write("")
        if dry_run:
            self.stdout.write(
                self.style.WARNING(f"Would create/update {len(tasks)} periodic tasks")
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Done! Created: {created_count}, Updated: {updated_count}"
                )
            )

    def _output_crontab(self):
        """Print crontab lines for deployments without Celery Beat."""
        for task in get_tasks_for_backend(Backend.CRON):
            prefix = "" if task.enabled else "# "
            self.stdout.write(f"# {task.name}: {task.description}")
            self.stdout.write(f"{prefix}{task.crontab_line}")

    def _parse_cron(self, cron_expr: str) -> dict[str, str]:
        """
        Parse a cron expression into django_celery_beat CrontabSchedule fields.

        Args:
            cron_expr: Standard 5-field cron expression (minute hour dom month dow)
        """
        parts = cron_expr.split()
        if len(parts) != CRON_FIELD_COUNT:
            raise CommandError(f"Invalid cron expression: {cron_expr}")

        return {
            "minute": parts[0],
            "hour": parts[1],
            "day_of_month": parts[2],
            "month_of_year": parts[3],
            "day_of_week": parts[4],
        }
