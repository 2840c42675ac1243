from django.contrib import admin

from servicemarket.accounts.models import Account


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    """Admin for marketplace accounts."""

    list_display = [
        "display_name",
        "user",
        "payment_status",
        "referred_by",
        "total_referrals",
        "total_commissions_earned",
    ]
    list_filter = ["payment_status"]
    search_fields = ["display_name", "user__username", "user__email"]
    raw_id_fields = ["user", "referred_by"]
    readonly_fields = [
        "id",
        "total_referrals",
        "total_commissions_earned",
        "created",
        "modified",
    ]

    fieldsets = [
        (None, {"fields": ["id", "user", "display_name", "payment_status"]}),
        (
            "Referrals",
            {
                "fields": [
                    "referred_by",
                    "total_referrals",
                    "total_commissions_earned",
                ],
            },
        ),
        ("Timestamps", {"fields": ["created", "modified"]}),
    ]
