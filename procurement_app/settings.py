"""
Django settings for procurement_app project.

Values are read from the environment; a local ``.env`` file is loaded when
present. ``DATABASE_URL`` selects the database (SQLite by default, PostgreSQL
in production so that row locks are honoured).
"""

import os
from pathlib import Path

import dj_database_url
from dotenv import load_dotenv

from procurement_app.logging import build_logging_config

load_dotenv()


def env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def env_list(name: str, default: str) -> list:
    return [part.strip() for part in os.getenv(name, default).split(",") if part.strip()]


BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-procurement-dev-key")

DEBUG = env_bool("DJANGO_DEBUG", "true")

ALLOWED_HOSTS = env_list("DJANGO_ALLOWED_HOSTS", "*")


INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "core",
    "procurement",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "procurement_app.urls"

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
    },
]

WSGI_APPLICATION = "procurement_app.wsgi.application"


DATABASES = {
    "default": dj_database_url.config(
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=env_int("DB_CONN_MAX_AGE", 0),
    )
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

REST_FRAMEWORK = {
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    "EXCEPTION_HANDLER": "procurement.exceptions.custom_exception_handler",
}

# Email is a best-effort side effect; the console backend keeps local runs quiet.
EMAIL_BACKEND = os.getenv(
    "EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend"
)
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = env_int("EMAIL_PORT", 587)
EMAIL_HOST_USER = os.getenv("EMAIL_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_PASS", "")
EMAIL_USE_TLS = env_bool("EMAIL_USE_TLS", "true")
DEFAULT_FROM_EMAIL = os.getenv("EMAIL_FROM", "no-reply@localhost")

# Logging: rotating file plus console on the root logger.
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", str(BASE_DIR / "procurement.log"))
LOG_RETENTION_DAYS = env_int("LOG_RETENTION_DAYS", 30)
LOGGING = build_logging_config(LOG_FILE, LOG_LEVEL)

# Procurement workflow configuration
PROCUREMENT_NOTIFICATION_ROLES = env_list(
    "PROCUREMENT_NOTIFICATION_ROLES", "ProcurementSpecialist,SCM"
)
PROCUREMENT_FORWARDING_ROLES = env_list(
    "PROCUREMENT_FORWARDING_ROLES", "HOD,SCM,CMO,COO,WarehouseManager"
)
PROCUREMENT_RUN_MIGRATIONS_ON_STARTUP = env_bool(
    "PROCUREMENT_RUN_MIGRATIONS_ON_STARTUP", "true"
)
