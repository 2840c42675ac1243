"""
With these settings, tests run faster.
"""

from .base import *  # noqa: F403
from .base import DATABASES
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="t3BqLhv0Zq9cR1xK8mWnA2sYdE5uJ7oPfG4iVbN6lHzTkXcQwMeRyUaSdFgHjKl",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#test-runner
TEST_RUNNER = "django.test.runner.DiscoverRunner"
DATABASES["default"]["CONN_MAX_AGE"] = 0  # type: ignore[name-defined]
# Service calls manage their own transactions in tests.
DATABASES["default"]["ATOMIC_REQUESTS"] = False  # type: ignore[name-defined]
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# PASSWORDS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#password-hashers
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# EMAIL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#email-backend
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# Celery
# ------------------------------------------------------------------------------
# Run tasks inline so the post-commit commission hook executes in tests.
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"

# Your stuff...
# ------------------------------------------------------------------------------

# Tests assert on exact defaults regardless of the developer's environment.
LEDGER_DEFAULT_CURRENCY = "NGN"
REFERRAL_COMMISSION_RATE = Decimal("10.00")  # noqa: F405
SUBSCRIPTION_GRACE_PERIOD_DAYS = 3
SUBSCRIPTION_REMINDER_DAYS = [7, 3, 1]
SUBSCRIPTION_AUTO_RENEW_ENABLED = False
SUBSCRIPTION_RENEWAL_LEAD_HOURS = 0
SUBSCRIPTION_RENEWAL_RETRY_MINUTES = 60
TIME_ZONE = "UTC"
CELERY_TIMEZONE = TIME_ZONE
REFERRAL_CODE_MAX_ATTEMPTS = 10
REFERRAL_AUTO_PAYOUT_BATCH_SIZE = 100
SUBSCRIPTION_SCAN_BATCH_SIZE = 500
SCHEDULER_LEASE_SECONDS = 45 * 60
PAYMENT_PROCESSOR_CLASS = "servicemarket.billing.gateways.UnconfiguredPaymentProcessor"
NOTIFICATION_SENDER_CLASS = "servicemarket.notifications.senders.DatabaseNotificationSender"
ACCOUNT_STATUS_TOGGLE_CLASS = "servicemarket.accounts.services.DatabaseAccountStatusToggle"

# LOGGING
# ------------------------------------------------------------------------------
# Let pytest's caplog see application log records.
LOGGING["loggers"]["servicemarket"]["propagate"] = True  # noqa: F405
