"""
Django admin configuration for ledger models.

Both models are read-only here. Balances change only through
LedgerService so the wallet/history invariant cannot be broken from the
admin.
"""

from django.contrib import admin

from servicemarket.ledger.models import LedgerTransaction
from servicemarket.ledger.models import Wallet


class LedgerTransactionInline(admin.TabularInline):
    model = LedgerTransaction
    extra = 0
    ordering = ["-sequence"]
    fields = ["sequence", "type", "amount", "balance_after", "reference", "created_at"]
    readonly_fields = fields
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    """Admin for account wallets."""

    list_display = ["account", "balance", "currency", "modified"]
    list_filter = ["currency"]
    search_fields = ["account__display_name", "account__user__email"]
    readonly_fields = ["id", "account", "balance", "currency", "created", "modified"]
    inlines = [LedgerTransactionInline]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(LedgerTransaction)
class LedgerTransactionAdmin(admin.ModelAdmin):
    """Read-only view of the transaction log."""

    list_display = [
        "wallet",
        "sequence",
        "type",
        "amount",
        "balance_after",
        "reference",
        "created_at",
    ]
    list_filter = ["type"]
    search_fields = ["reference", "description", "wallet__account__display_name"]
    ordering = ["-created_at"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
