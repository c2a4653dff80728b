"""
Base settings to build other settings files upon.
"""

from pathlib import Path

import environ

ROOT_DIR = Path(__file__).resolve(strict=True).parent.parent.parent

env = environ.Env()

READ_DOT_ENV_FILE = env.bool("DJANGO_READ_DOT_ENV_FILE", default=False)
DOT_ENV_FILE = env("DJANGO_DOT_ENV_FILE", default=None)
if READ_DOT_ENV_FILE or DOT_ENV_FILE:
    DOT_ENV_FILE = DOT_ENV_FILE or ".env"
    # OS environment variables take precedence over variables from .env
    env.read_env(str(ROOT_DIR / DOT_ENV_FILE))

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#debug
DEBUG = env.bool("DEBUG", False)
# Local time zone. Choices are
# http://en.wikipedia.org/wiki/List_of_tz_zones_by_name
TIME_ZONE = "UTC"
# https://docs.djangoproject.com/en/dev/ref/settings/#language-code
LANGUAGE_CODE = "en-us"
# https://docs.djangoproject.com/en/dev/ref/settings/#use-i18n
USE_I18N = True
# https://docs.djangoproject.com/en/dev/ref/settings/#use-tz
USE_TZ = True

# DATABASES
# ------------------------------------------------------------------------------
# Nothing is persisted, every domain object is fetched from the Transaction Service
DATABASES = {}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# APPS
# ------------------------------------------------------------------------------
DJANGO_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
]
THIRD_PARTY_APPS = [
    "rest_framework",
]
LOCAL_APPS = [
    "safe_client_gateway.transactions.apps.TransactionsConfig",
]
# https://docs.djangoproject.com/en/dev/ref/settings/#installed-apps
INSTALLED_APPS = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

# Django REST Framework
# ------------------------------------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.AllowAny",),
    "DEFAULT_RENDERER_CLASSES": (
        "djangorestframework_camel_case.render.CamelCaseJSONRenderer",
    ),
    "DEFAULT_PARSER_CLASSES": (
        "djangorestframework_camel_case.parser.CamelCaseJSONParser",
    ),
    "EXCEPTION_HANDLER": "safe_client_gateway.transactions.exceptions.custom_exception_handler",
}

# LOGGING
# ------------------------------------------------------------------------------
# See: https://docs.djangoproject.com/en/dev/ref/settings/#logging
# Security events are logged as errors with an ``extra_data`` attribute, rendered
# as ``contextMessage.extraData`` by the json formatter
LOGGING_FORMATTER = env.str("LOGGING_FORMATTER", default="json")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s [%(levelname)s] [%(processName)s] %(message)s"
        },
        "json": {
            "()": "safe_client_gateway.loggers.custom_logger.SafeJsonFormatter",
        },
    },
    "handlers": {
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": LOGGING_FORMATTER,
        },
    },
    "loggers": {
        "": {
            "handlers": ["console"],
            "level": "INFO",
        },
        "safe_client_gateway": {
            "level": "DEBUG" if DEBUG else "INFO",
            "handlers": ["console"],
            "propagate": False,
        },
        "urllib3": {
            "level": "DEBUG" if DEBUG else "WARNING",
        },
    },
}

# Transaction Service
# ------------------------------------------------------------------------------
# Chain id to Transaction Service url, e.g. `1=https://safe-transaction-mainnet.safe.global/`
TRANSACTION_SERVICE_URLS = env.dict("TRANSACTION_SERVICE_URLS", default={})
TRANSACTION_SERVICE_REQUEST_TIMEOUT = env.int(
    "TRANSACTION_SERVICE_REQUEST_TIMEOUT", default=10
)

# Transaction verification
# ------------------------------------------------------------------------------
BANNED_EOAS = env.list("BANNED_EOAS", default=[])
ENABLE_ETH_SIGN_SIGNATURES = env.bool("ENABLE_ETH_SIGN_SIGNATURES", default=True)
DISABLE_CREATION_MULTISIG_TRANSACTIONS_WITH_DELEGATE_CALL_OPERATION = env.bool(
    "DISABLE_CREATION_MULTISIG_TRANSACTIONS_WITH_DELEGATE_CALL_OPERATION",
    default=True,
)  # Only contracts trusted for delegate calls are allowed
ENABLE_API_HASH_VERIFICATION = env.bool("ENABLE_API_HASH_VERIFICATION", default=True)
ENABLE_API_SIGNATURE_VERIFICATION = env.bool(
    "ENABLE_API_SIGNATURE_VERIFICATION", default=True
)
ENABLE_PROPOSAL_HASH_VERIFICATION = env.bool(
    "ENABLE_PROPOSAL_HASH_VERIFICATION", default=True
)
ENABLE_PROPOSAL_SIGNATURE_VERIFICATION = env.bool(
    "ENABLE_PROPOSAL_SIGNATURE_VERIFICATION", default=True
)
ENABLE_MESSAGE_VERIFICATION = env.bool("ENABLE_MESSAGE_VERIFICATION", default=True)
