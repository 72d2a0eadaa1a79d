# config/settings/test.py
import os

from .base import *  # noqa

DEBUG = False

# LIS_TEST_POSTGRES=1 runs the suite against the DB_* PostgreSQL server
if not os.getenv("LIS_TEST_POSTGRES"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": ":memory:",
        }
    }

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

COMMON_IDEMPOTENCY_USE_DB = True

LOGGING["root"]["level"] = "WARNING"
