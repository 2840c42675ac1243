"""
Tests for the scheduler lease helpers.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from servicemarket.core.leases import LeaseUnavailableError
from servicemarket.core.leases import acquire_lease
from servicemarket.core.leases import release_lease
from servicemarket.core.leases import single_flight
from servicemarket.core.models import SchedulerLease


@pytest.mark.django_db
class TestAcquireLease:
    def test_free_lease_is_acquired(self):
        """A lease nobody holds is taken and given an expiry."""
        assert acquire_lease("scan", "worker-a") is True

        lease = SchedulerLease.objects.get(name="scan")
        assert lease.holder == "worker-a"
        assert lease.expires_at > timezone.now()

    def test_held_lease_is_refused(self):
        """A second holder cannot take an unexpired lease."""
        acquire_lease("scan", "worker-a")

        assert acquire_lease("scan", "worker-b") is False
        assert SchedulerLease.objects.get(name="scan").holder == "worker-a"

    def test_same_holder_extends(self):
        acquire_lease("scan", "worker-a", ttl=timedelta(minutes=1))
        first_expiry = SchedulerLease.objects.get(name="scan").expires_at

        assert acquire_lease("scan", "worker-a", ttl=timedelta(hours=1)) is True
        assert SchedulerLease.objects.get(name="scan").expires_at > first_expiry

    def test_expired_lease_is_taken_over(self):
        """A crashed holder's lease can be taken once it has expired."""
        SchedulerLease.objects.create(
            name="scan",
            holder="crashed-worker",
            expires_at=timezone.now() - timedelta(seconds=1),
        )

        assert acquire_lease("scan", "worker-b") is True
        assert SchedulerLease.objects.get(name="scan").holder == "worker-b"

    def test_release_only_by_holder(self):
        acquire_lease("scan", "worker-a")

        assert release_lease("scan", "worker-b") is False
        assert release_lease("scan", "worker-a") is True
        assert SchedulerLease.objects.get(name="scan").holder == ""


@pytest.mark.django_db
class TestSingleFlight:
    def test_releases_after_block(self):
        with single_flight("scan", holder="worker-a") as holder:
            assert holder == "worker-a"
            assert SchedulerLease.objects.get(name="scan").holder == "worker-a"

        assert SchedulerLease.objects.get(name="scan").holder == ""

    def test_releases_when_block_raises(self):
        with pytest.raises(ValueError, match="boom"):
            with single_flight("scan", holder="worker-a"):
                raise ValueError("boom")

        assert acquire_lease("scan", "worker-b") is True

    def test_raises_when_held_elsewhere(self):
        acquire_lease("scan", "worker-a")

        with pytest.raises(LeaseUnavailableError) as exc_info:
            with single_flight("scan", holder="worker-b"):
                pytest.fail("block must not run while the lease is held")

        assert exc_info.value.holder == "worker-a"
        assert exc_info.value.code == "lease_unavailable"
