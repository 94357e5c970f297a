from pathlib import Path

from decouple import Csv, config

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = config("DJANGO_SECRET_KEY")
DEBUG = config("DJANGO_DEBUG", default=False, cast=bool)
ALLOWED_HOSTS = config("DJANGO_ALLOWED_HOSTS", default="localhost,127.0.0.1", cast=Csv())

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "stk_relay",
    "emergency",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "relay_site.urls"
WSGI_APPLICATION = "relay_site.wsgi.application"

# Routes mirror the mobile client's paths, which have no trailing slash.
APPEND_SLASH = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": config("DJANGO_DB_PATH", default=str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = "UTC"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "UNAUTHENTICATED_USER": None,
}

LOG_LEVEL = config("LOG_LEVEL", default="INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
}

# M-Pesa (Daraja). The env-backed tenant doubles as the single-tenant
# deployment used by /api/stkpush and /api/donate.
MPESA_ENVIRONMENT = config("MPESA_ENVIRONMENT").lower()
MPESA_DEFAULT_TENANT = config("MPESA_DEFAULT_TENANT", default="veyoApp")
MPESA_CREDENTIALS = {
    "consumer_key": config("MPESA_CONSUMER_KEY"),
    "consumer_secret": config("MPESA_CONSUMER_SECRET"),
    "passkey": config("MPESA_PASSKEY"),
    "shortcode": config("MPESA_SHORTCODE"),
    "callback_url": config("MPESA_CALLBACK_URL"),
    "environment": MPESA_ENVIRONMENT,
    "account_reference": config("MPESA_ACCOUNT_REFERENCE", default="VeyoRide"),
    "transaction_desc": config("MPESA_TRANSACTION_DESC", default="Payment for ride service"),
}
MPESA_TENANTS_FILE = config("MPESA_TENANTS_FILE", default="")
MPESA_TIMEZONE = config("MPESA_TIMEZONE", default="Africa/Nairobi")

# Twilio (emergency alerts). Missing values only fail the alert endpoint.
TWILIO_ACCOUNT_SID = config("TWILIO_ACCOUNT_SID", default="")
TWILIO_AUTH_TOKEN = config("TWILIO_AUTH_TOKEN", default="")
TWILIO_PHONE_NUMBER = config("TWILIO_PHONE_NUMBER", default="")
EMERGENCY_CONTACTS = config("EMERGENCY_CONTACTS", default="", cast=Csv())
DISPATCH_NUMBER = config("DISPATCH_NUMBER", default="")
