"""
Django admin configuration for billing models.

Provides admin interfaces for:
- Plan: View/edit plans, prices and feature limits
- Subscription: View subscriptions and cancel them
- SubscriptionReminder: See which renewal reminders went out
"""

from django.contrib import admin
from django.contrib import messages

from servicemarket.billing.models import Plan
from servicemarket.billing.models import Subscription
from servicemarket.billing.models import SubscriptionReminder
from servicemarket.billing.services import SubscriptionService
from servicemarket.core.exceptions import ServiceError


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    """Admin for subscription plans."""

    list_display = [
        "slug",
        "name",
        "price",
        "interval",
        "priority",
        "is_active",
        "display_order",
    ]
    list_editable = ["is_active", "display_order"]
    list_filter = ["interval", "is_active"]
    ordering = ["display_order"]
    search_fields = ["slug", "name"]

    fieldsets = [
        (None, {"fields": ["slug", "name", "description", "is_active"]}),
        ("Pricing", {"fields": ["price", "interval"]}),
        (
            "Limits",
            {
                "fields": [
                    "max_photos",
                    "max_videos",
                    "video_max_duration_seconds",
                    "top_listing_days",
                    "priority",
                ],
            },
        ),
        ("Display", {"fields": ["display_order"]}),
    ]


class SubscriptionReminderInline(admin.TabularInline):
    model = SubscriptionReminder
    extra = 0
    fields = ["lead_days", "period_end", "created"]
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin for account subscriptions."""

    list_display = [
        "account",
        "plan",
        "status",
        "price",
        "current_period_end",
        "auto_renew",
    ]
    list_filter = ["status", "plan", "auto_renew"]
    search_fields = ["account__display_name", "account__user__email"]
    raw_id_fields = ["account"]
    readonly_fields = [
        "id",
        "price",
        "renewal_attempted_at",
        "cancelled_at",
        "expired_at",
        "created",
        "modified",
    ]
    inlines = [SubscriptionReminderInline]
    actions = ["cancel_subscriptions"]

    fieldsets = [
        (None, {"fields": ["id", "account", "plan", "status", "auto_renew"]}),
        (
            "Billing Period",
            {"fields": ["current_period_start", "current_period_end", "price"]},
        ),
        (
            "Lifecycle",
            {"fields": ["renewal_attempted_at", "cancelled_at", "expired_at"]},
        ),
        ("Metadata", {"fields": ["metadata"], "classes": ["collapse"]}),
        ("Timestamps", {"fields": ["created", "modified"]}),
    ]

    @admin.action(description="Cancel selected subscriptions")
    def cancel_subscriptions(self, request, queryset):
        service = SubscriptionService()
        cancelled = 0
        for subscription in queryset:
            try:
                service.cancel_subscription(subscription.pk)
            except ServiceError as exc:
                self.message_user(
                    request,
                    f"Subscription {subscription.pk}: {exc.detail}",
                    level=messages.ERROR,
                )
            else:
                cancelled += 1
        if cancelled:
            self.message_user(
                request,
                f"Cancelled {cancelled} subscription(s).",
                level=messages.SUCCESS,
            )
