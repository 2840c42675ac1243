from django.db import models
from django.utils import timezone


class SchedulerLease(models.Model):
    """
    Single-flight guard for a named background scan.

    A scan holds its lease for the duration of a run. Another worker that
    finds an unexpired lease held by someone else skips the run instead of
    processing the same rows concurrently. Expired leases are taken over,
    so a crashed worker blocks the scan for at most SCHEDULER_LEASE_SECONDS.

    See servicemarket.core.leases for the acquire/release helpers.
    """

    name = models.CharField(max_length=100, primary_key=True)
    holder = models.CharField(
        max_length=255,
        blank=True,
        help_text="Identifier of the process currently holding the lease.",
    )
    acquired_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.holder or 'free'})"

    @property
    def is_held(self) -> bool:
        return bool(self.holder) and (
            self.expires_at is not None and self.expires_at > timezone.now()
        )
