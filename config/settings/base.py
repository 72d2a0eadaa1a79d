# config/settings/base.py
from pathlib import Path
import os
from dotenv import load_dotenv
from datetime import timedelta


BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "unsafe-dev-key")
DEBUG = os.getenv("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = ["*"]

INSTALLED_APPS = [
    # Django
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third-party
    "corsheaders",
    "rest_framework",
    "rest_framework_simplejwt",
    "drf_spectacular",
    "django_filters",

    # Domain apps (modular monolith)
    "lis_core.common.apps.CommonConfig",
    "lis_core.branches.apps.BranchesConfig",
    "lis_core.catalog.apps.CatalogConfig",
    "lis_core.patients.apps.PatientsConfig",
    "lis_core.orders.apps.OrdersConfig",
    "lis_core.admissions.apps.AdmissionsConfig",
    "lis_core.lab.apps.LabConfig",
    "lis_core.billing.apps.BillingConfig",
    "lis_core.audit.apps.AuditConfig",
    "lis_core.alerts.apps.AlertsConfig",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "lis_core.common.middleware.RequestIdMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]


ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("DB_NAME", "lis"),
        "USER": os.getenv("DB_USER", "lis"),
        "PASSWORD": os.getenv("DB_PASSWORD", "lis"),
        "HOST": os.getenv("DB_HOST", "127.0.0.1"),
        "PORT": os.getenv("DB_PORT", "5432"),
    }
}

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "es-pe"
# The clinic's calendar: day prefixes for codes and naive paid_at values use it.
TIME_ZONE = os.getenv("LIS_TIME_ZONE", "America/Lima")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_SCHEMA_CLASS": "lis_core.common.openapi.LISAutoSchema",

    # Standard error envelope
    "EXCEPTION_HANDLER": "lis_core.common.api.exceptions.api_exception_handler",

    "DEFAULT_FILTER_BACKENDS": [
        "django_filters.rest_framework.DjangoFilterBackend",
        "rest_framework.filters.OrderingFilter",
    ],

    "DEFAULT_PAGINATION_CLASS": "lis_core.common.api.pagination.DefaultPagination",
    "COERCE_DECIMAL_TO_STRING": True,
}

SPECTACULAR_SETTINGS = {
    "TITLE": "LIS Core API",
    "DESCRIPTION": "Admission desk, lab orders, patient payments and referred-lab payments",
    "VERSION": "0.1.0",
    "COMPONENT_SPLIT_REQUEST": True,
    "SORT_OPERATIONS": True,
    "SORT_OPERATION_PARAMETERS": True,
    "SECURITY": [
        {"jwtAuth": []}
    ],
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=14),
    "ROTATE_REFRESH_TOKENS": True,
    "BLACKLIST_AFTER_ROTATION": False,
    "UPDATE_LAST_LOGIN": True,
}

CORS_ALLOW_ALL_ORIGINS = True  # Only for development!
CORS_ALLOW_CREDENTIALS = True

COMMON_IDEMPOTENCY_USE_DB = True
COMMON_IDEMPOTENCY_PENDING_TTL = int(os.getenv("COMMON_IDEMPOTENCY_PENDING_TTL", "120"))

# Human-readable code sequences. Admission and order codes never share a prefix.
LIS_ORDER_CODE_PREFIX = os.getenv("LIS_ORDER_CODE_PREFIX", "ORD-")
LIS_ADMISSION_CODE_PREFIX = os.getenv("LIS_ADMISSION_CODE_PREFIX", "ADM-")
LIS_PATIENT_CODE_PREFIX = os.getenv("LIS_PATIENT_CODE_PREFIX", "PAC-")
LIS_CODE_SEQUENCE_WIDTH = int(os.getenv("LIS_CODE_SEQUENCE_WIDTH", "4"))
LIS_CODE_MAX_ATTEMPTS = int(os.getenv("LIS_CODE_MAX_ATTEMPTS", "3"))

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "[{levelname}] {asctime} {name} {message}",
            "style": "{",
        },
        "simple": {
            "format": "[{levelname}] {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
            "stream": "ext://sys.stdout",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "django.db.backends": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
        "lis_core": {
            "handlers": ["console"],
            "level": os.getenv("LIS_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
