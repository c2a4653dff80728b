"""
With these settings, tests run faster.
"""

from .base import *  # noqa
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#debug
DEBUG = False
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="W3gkHZTtUx1OJ7cl1sLsTzq5fWEexDbFiKRPGoWTr9TqvJsIuJfg3GXk2BVP8dYS",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#test-runner
TEST_RUNNER = "django.test.runner.DiscoverRunner"

# CACHES
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#caches
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.dummy.DummyCache",
    },
}

TRANSACTION_SERVICE_URLS = {
    "1": "https://safe-transaction-mainnet.safe.global/",
    "11155111": "https://safe-transaction-sepolia.safe.global/",
}

LOGGING["handlers"]["console"]["formatter"] = "verbose"  # noqa F405
LOGGING["loggers"] = {  # noqa F405
    "safe_client_gateway": {
        "level": "DEBUG",
    }
}
