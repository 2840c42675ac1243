from django.apps import AppConfig


class CoreConfig(AppConfig):
    """
    Shared plumbing: service exceptions, scheduler leases and the
    scheduled task registry.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "servicemarket.core"
