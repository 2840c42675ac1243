"""
Database-backed single-flight leases for scheduled scans.

Celery Beat can fire the same task twice (a slow run overlapping the next
tick, a duplicate beat process, a manual run from the shell). Each scan
therefore wraps its work in ``single_flight``, which takes a named row in
``SchedulerLease`` under ``select_for_update``. While the lease is held and
unexpired, other callers get ``LeaseUnavailableError`` and skip the run.

Usage:
    from servicemarket.core.leases import single_flight

    with single_flight("billing.expire_overdue"):
        ...  # only one worker at a time gets here
"""

from __future__ import annotations

import logging
import os
import socket
from contextlib import contextmanager
from datetime import timedelta
from uuid import uuid4

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from servicemarket.core.exceptions import InvalidStateError
from servicemarket.core.models import SchedulerLease

logger = logging.getLogger(__name__)


class LeaseUnavailableError(InvalidStateError):
    """Raised when another holder owns an unexpired lease."""

    def __init__(self, name: str, holder: str = ""):
        self.name = name
        self.holder = holder
        super().__init__(
            detail=f"Lease '{name}' is held by {holder or 'another worker'}.",
            code="lease_unavailable",
        )


def default_holder() -> str:
    """Identify this process for lease bookkeeping."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


def acquire_lease(name: str, holder: str, ttl: timedelta | None = None) -> bool:
    """
    Try to take the named lease for ``holder``.

    Returns True if the lease was free, expired, or already held by the same
    holder (the expiry is extended). Returns False if someone else holds it.
    """
    if ttl is None:
        ttl = timedelta(seconds=settings.SCHEDULER_LEASE_SECONDS)

    with transaction.atomic():
        lease, _created = SchedulerLease.objects.select_for_update().get_or_create(
            name=name,
        )
        now = timezone.now()
        if (
            lease.holder
            and lease.holder != holder
            and lease.expires_at is not None
            and lease.expires_at > now
        ):
            logger.info(
                "Lease %s is held by %s until %s",
                name,
                lease.holder,
                lease.expires_at.isoformat(),
            )
            return False

        if lease.holder and lease.holder != holder:
            logger.warning(
                "Taking over expired lease %s from %s",
                name,
                lease.holder,
            )

        lease.holder = holder
        lease.acquired_at = now
        lease.expires_at = now + ttl
        lease.save(update_fields=["holder", "acquired_at", "expires_at"])
        return True


def release_lease(name: str, holder: str) -> bool:
    """Release the lease if ``holder`` still owns it."""
    updated = SchedulerLease.objects.filter(name=name, holder=holder).update(
        holder="",
        expires_at=None,
    )
    return bool(updated)


@contextmanager
def single_flight(name: str, *, holder: str | None = None, ttl: timedelta | None = None):
    """
    Run the enclosed block only if the named lease can be acquired.

    Raises:
        LeaseUnavailableError: If another worker holds an unexpired lease.
    """
    holder = holder or default_holder()
    if not acquire_lease(name, holder, ttl=ttl):
        current = (
            SchedulerLease.objects.filter(name=name)
            .values_list("holder", flat=True)
            .first()
        )
        raise LeaseUnavailableError(name, holder=current or "")

    try:
        yield holder
    finally:
        release_lease(name, holder)
