from django.contrib import admin

from servicemarket.notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ["title", "account", "type", "created_at", "read_at"]
    list_filter = ["type"]
    search_fields = ["title", "account__display_name"]
    raw_id_fields = ["account"]
    readonly_fields = ["id", "created_at"]
