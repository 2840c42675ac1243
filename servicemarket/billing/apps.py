from django.apps import AppConfig


class BillingConfig(AppConfig):
    """
    Subscription plans, the subscription lifecycle and expiration scans.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "servicemarket.billing"
