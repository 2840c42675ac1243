from django.apps import AppConfig


class ReferralsConfig(AppConfig):
    """
    Referral codes, referrals and the commissions they earn.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "servicemarket.referrals"
