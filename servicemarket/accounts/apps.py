from django.apps import AppConfig


class AccountsConfig(AppConfig):
    """
    The marketplace account: the party that subscribes to plans, refers
    other accounts and holds a wallet.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "servicemarket.accounts"
