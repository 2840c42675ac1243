"""
Django admin configuration for referral models.

Provides admin interfaces for:
- ReferralCode: Look up the owner of a code
- Referral: View who referred whom and whether it completed
- Commission: Review commissions and pay them to referrer wallets
"""

from django.contrib import admin
from django.contrib import messages

from servicemarket.core.exceptions import ServiceError
from servicemarket.referrals.commissions import CommissionEngine
from servicemarket.referrals.constants import CommissionStatus
from servicemarket.referrals.models import Commission
from servicemarket.referrals.models import Referral
from servicemarket.referrals.models import ReferralCode


@admin.register(ReferralCode)
class ReferralCodeAdmin(admin.ModelAdmin):
    """Admin for referral codes."""

    list_display = ["code", "account", "created"]
    search_fields = ["code", "account__display_name"]
    raw_id_fields = ["account"]
    readonly_fields = ["created", "modified"]


@admin.register(Referral)
class ReferralAdmin(admin.ModelAdmin):
    """Admin for referrals."""

    list_display = [
        "referrer",
        "referee",
        "code",
        "status",
        "commission_rate",
        "completed_at",
    ]
    list_filter = ["status"]
    search_fields = ["code", "referrer__display_name", "referee__display_name"]
    raw_id_fields = ["referrer", "referee", "subscription"]
    readonly_fields = ["id", "completed_at", "created", "modified"]


@admin.register(Commission)
class CommissionAdmin(admin.ModelAdmin):
    """
    Admin for referral commissions.

    Amounts are read-only; commissions are paid through the
    "Pay selected commissions to wallet" action so every payout goes
    through CommissionEngine and lands in the ledger.
    """

    list_display = [
        "referrer",
        "commission_amount",
        "commission_rate",
        "subscription_amount",
        "status",
        "payment_method",
        "paid_at",
    ]
    list_filter = ["status", "payment_method"]
    search_fields = ["referrer__display_name", "payment_reference"]
    raw_id_fields = ["referral", "referrer", "subscription"]
    readonly_fields = [
        "id",
        "referral",
        "referrer",
        "subscription",
        "subscription_amount",
        "commission_rate",
        "commission_amount",
        "status",
        "paid_at",
        "payment_method",
        "payment_reference",
        "created",
        "modified",
    ]
    actions = ["pay_to_wallet"]

    fieldsets = [
        (None, {"fields": ["id", "referral", "referrer", "subscription"]}),
        (
            "Amounts",
            {
                "fields": [
                    "subscription_amount",
                    "commission_rate",
                    "commission_amount",
                ],
            },
        ),
        (
            "Payment",
            {"fields": ["status", "paid_at", "payment_method", "payment_reference"]},
        ),
        ("Timestamps", {"fields": ["created", "modified"]}),
    ]

    def has_add_permission(self, request):
        return False

    @admin.action(description="Pay selected commissions to wallet")
    def pay_to_wallet(self, request, queryset):
        engine = CommissionEngine()
        paid = 0
        failed = 0
        for commission in queryset.filter(status=CommissionStatus.PENDING):
            try:
                engine.pay_commission(commission.pk)
            except ServiceError as exc:
                failed += 1
                self.message_user(
                    request,
                    f"Commission {commission.pk} not paid: {exc.detail}",
                    level=messages.ERROR,
                )
            else:
                paid += 1

        if paid:
            self.message_user(
                request,
                f"Paid {paid} commission(s) to referrer wallets.",
                level=messages.SUCCESS,
            )
        elif not failed:
            self.message_user(
                request,
                "No pending commissions selected.",
                level=messages.WARNING,
            )
