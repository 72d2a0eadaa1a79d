# config/settings/local.py
from .base import *  # noqa

DEBUG = os.getenv("DJANGO_DEBUG", "1") == "1"

if os.getenv("DB_ENGINE", "sqlite") == "sqlite":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

COMMON_IDEMPOTENCY_USE_DB = False
