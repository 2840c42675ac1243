"""
Base settings to build other settings files upon.
"""

from decimal import Decimal
from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve(strict=True).parent.parent.parent
# servicemarket/
APPS_DIR = BASE_DIR / "servicemarket"
env = environ.Env()

READ_DOT_ENV_FILE = env.bool("DJANGO_READ_DOT_ENV_FILE", default=False)
if READ_DOT_ENV_FILE:
    # OS environment variables take precedence over variables from .env
    env.read_env(str(BASE_DIR / ".env"))

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#debug
DEBUG = env.bool("DJANGO_DEBUG", False)
# Local time zone. Calendar-day windows (renewal reminders) are computed in
# this zone; all stored datetimes are UTC.
TIME_ZONE = env("DJANGO_TIME_ZONE", default="Africa/Lagos")
# https://docs.djangoproject.com/en/dev/ref/settings/#language-code
LANGUAGE_CODE = "en-us"
# https://docs.djangoproject.com/en/dev/ref/settings/#site-id
SITE_ID = 1
# https://docs.djangoproject.com/en/dev/ref/settings/#use-i18n
USE_I18N = True
# https://docs.djangoproject.com/en/dev/ref/settings/#use-tz
USE_TZ = True

# DATABASES
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#databases
DATABASES = {
    "default": env.db(
        "DATABASE_URL",
        default=f"sqlite:///{BASE_DIR / 'servicemarket.sqlite3'}",
    ),
}
DATABASES["default"]["ATOMIC_REQUESTS"] = True
# https://docs.djangoproject.com/en/stable/ref/settings/#std:setting-DEFAULT_AUTO_FIELD
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# URLS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#root-urlconf
ROOT_URLCONF = "config.urls"

# APPS
# ------------------------------------------------------------------------------
DJANGO_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django.contrib.admin",
]
THIRD_PARTY_APPS = [
    "django_celery_beat",
]

LOCAL_APPS = [
    "servicemarket.core",
    "servicemarket.accounts",
    "servicemarket.ledger",
    "servicemarket.notifications",
    "servicemarket.billing",
    "servicemarket.referrals",
]
# https://docs.djangoproject.com/en/dev/ref/settings/#installed-apps
INSTALLED_APPS = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

# PASSWORDS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#auth-password-validators
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# MIDDLEWARE
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#middleware
MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# STATIC
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#static-root
STATIC_ROOT = str(BASE_DIR / "staticfiles")
# https://docs.djangoproject.com/en/dev/ref/settings/#static-url
STATIC_URL = "/static/"

# TEMPLATES
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#templates
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [str(APPS_DIR / "templates")],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# SECURITY
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#session-cookie-httponly
SESSION_COOKIE_HTTPONLY = True
# https://docs.djangoproject.com/en/dev/ref/settings/#csrf-cookie-httponly
CSRF_COOKIE_HTTPONLY = True
# https://docs.djangoproject.com/en/dev/ref/settings/#x-frame-options
X_FRAME_OPTIONS = "DENY"

# ADMIN
# ------------------------------------------------------------------------------
# Django Admin URL.
ADMIN_URL = "admin/"

# LOGGING
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#logging
# See https://docs.djangoproject.com/en/dev/topics/logging for
# more details on how to customize your logging configuration.
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(levelname)s %(asctime)s %(module)s %(process)d %(thread)d %(message)s",
        },
    },
    "handlers": {
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {"level": "INFO", "handlers": ["console"]},
    "loggers": {
        "servicemarket": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}

# Celery
# ------------------------------------------------------------------------------
# https://docs.celeryq.dev/en/stable/userguide/configuration.html
CELERY_BROKER_URL = env("CELERY_BROKER_URL", default="redis://localhost:6379/0")
CELERY_RESULT_BACKEND = None
CELERY_TASK_IGNORE_RESULT = True
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
# Scans are short; a hard limit keeps a wedged worker from holding a lease
# past SCHEDULER_LEASE_SECONDS.
CELERY_TASK_TIME_LIMIT = 30 * 60
CELERY_TASK_SOFT_TIME_LIMIT = 25 * 60
CELERY_WORKER_SEND_TASK_EVENTS = True
CELERY_TASK_SEND_SENT_EVENT = True
# https://docs.celeryq.dev/en/stable/userguide/configuration.html#beat-scheduler
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"


# Your stuff...
# ------------------------------------------------------------------------------

# Ledger
LEDGER_DEFAULT_CURRENCY = env("LEDGER_DEFAULT_CURRENCY", default="NGN")

# Referrals
REFERRAL_COMMISSION_RATE = Decimal(env("REFERRAL_COMMISSION_RATE", default="10.00"))
REFERRAL_CODE_MAX_ATTEMPTS = env.int("REFERRAL_CODE_MAX_ATTEMPTS", default=10)
REFERRAL_AUTO_PAYOUT_BATCH_SIZE = env.int(
    "REFERRAL_AUTO_PAYOUT_BATCH_SIZE",
    default=100,
)

# Subscriptions
SUBSCRIPTION_GRACE_PERIOD_DAYS = env.int("SUBSCRIPTION_GRACE_PERIOD_DAYS", default=3)
SUBSCRIPTION_REMINDER_DAYS = [
    int(days) for days in env.list("SUBSCRIPTION_REMINDER_DAYS", default=["7", "3", "1"])
]
# Off by default: the hourly tick only hard-expires. Enable once
# PAYMENT_PROCESSOR_CLASS points at a real gateway.
SUBSCRIPTION_AUTO_RENEW_ENABLED = env.bool(
    "SUBSCRIPTION_AUTO_RENEW_ENABLED",
    default=False,
)
# How far ahead of period end a renewal charge may be attempted.
SUBSCRIPTION_RENEWAL_LEAD_HOURS = env.int("SUBSCRIPTION_RENEWAL_LEAD_HOURS", default=0)
# One renewal attempt per subscription within this window (one scan cycle).
SUBSCRIPTION_RENEWAL_RETRY_MINUTES = env.int(
    "SUBSCRIPTION_RENEWAL_RETRY_MINUTES",
    default=60,
)
SUBSCRIPTION_SCAN_BATCH_SIZE = env.int("SUBSCRIPTION_SCAN_BATCH_SIZE", default=500)

# Scheduler single-flight leases. Must exceed the longest expected scan.
SCHEDULER_LEASE_SECONDS = env.int("SCHEDULER_LEASE_SECONDS", default=45 * 60)

# External collaborators (dotted paths, instantiated without arguments)
PAYMENT_PROCESSOR_CLASS = env(
    "PAYMENT_PROCESSOR_CLASS",
    default="servicemarket.billing.gateways.UnconfiguredPaymentProcessor",
)
NOTIFICATION_SENDER_CLASS = env(
    "NOTIFICATION_SENDER_CLASS",
    default="servicemarket.notifications.senders.DatabaseNotificationSender",
)
ACCOUNT_STATUS_TOGGLE_CLASS = env(
    "ACCOUNT_STATUS_TOGGLE_CLASS",
    default="servicemarket.accounts.services.DatabaseAccountStatusToggle",
)
