from django.contrib import admin

from servicemarket.core.models import SchedulerLease


@admin.register(SchedulerLease)
class SchedulerLeaseAdmin(admin.ModelAdmin):
    """
    Scan leases. Clearing the holder here frees a lease left behind by a
    worker that died mid-scan.
    """

    list_display = ["name", "holder", "acquired_at", "expires_at"]
    search_fields = ["name", "holder"]
    readonly_fields = ["name", "acquired_at"]
