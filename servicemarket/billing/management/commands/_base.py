"""
Shared plumbing for the subscription scan commands.

Scans can run for a while on a large table. When cron or a process manager
sends SIGTERM/SIGINT, ``ScanCommand`` sets a flag instead of dying mid-row;
the scheduler checks it between rows, finishes the row in flight and
returns a partial result.
"""

import signal
import threading
from contextlib import contextmanager

from django.core.management.base import BaseCommand

from servicemarket.billing.expiration import ScanResult


class ScanCommand(BaseCommand):
    """Base class for commands that run an ExpirationScheduler scan."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._stop_requested = False

    def should_stop(self) -> bool:
        return self._stop_requested

    def _request_stop(self, signum, frame):
        self._stop_requested = True
        self.stderr.write(
            self.style.WARNING(
                f"Received {signal.Signals(signum).name}; "
                "finishing the current subscription and stopping.",
            ),
        )

    @contextmanager
    def stop_on_signals(self):
        """Route SIGTERM/SIGINT to should_stop() while the block runs."""
        # signal.signal() only works from the main thread
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        previous = {
            signum: signal.signal(signum, self._request_stop)
            for signum in (signal.SIGTERM, signal.SIGINT)
        }
        try:
            yield
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    def write_result(self, label: str, result: ScanResult) -> None:
        message = f"{label}: {result.summary()}"
        if result.failed:
            self.stdout.write(self.style.ERROR(message))
        elif result.lease_unavailable or result.stopped:
            self.stdout.write(self.style.WARNING(message))
        else:
            self.stdout.write(self.style.SUCCESS(message))

    def write_candidates(self, label: str, subscriptions) -> None:
        """Dry-run listing of the subscriptions a scan would touch."""
        count = 0
        for subscription in subscriptions.select_related("account", "plan"):
            count += 1
            self.stdout.write(
                f"  - {subscription.pk}: {subscription.account} on "
                f"{subscription.plan} (period end "
                f"{subscription.current_period_end.isoformat()})",
            )
        self.stdout.write(self.style.WARNING(f"[DRY RUN] {label}: {count} subscription(s)"))
