from django.apps import AppConfig


class LedgerConfig(AppConfig):
    """
    Account wallets and their append-only transaction history.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "servicemarket.ledger"
