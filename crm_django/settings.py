"""
Django settings for the Sales Pipeline CRM.

Server-rendered pipeline board and client intake form.
Business data lives in the hosted PostgreSQL datastore and is reached
through db.py (DATABASE_URL), not through the Django ORM.

SECURITY:
- SECRET_KEY, ALLOWED_HOSTS and CSRF_TRUSTED_ORIGINS are REQUIRED in production
- DEBUG is forced off in production
"""

import os
from pathlib import Path
from dotenv import load_dotenv
import dj_database_url

# Load .env for local development
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_list(name, default=''):
    """Comma-separated env var -> list, blanks dropped."""
    return [item.strip() for item in os.environ.get(name, default).split(',') if item.strip()]


def _require(name):
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"{name} environment variable is required in production")
    return value


# =============================================================================
# SECURITY - FAIL-CLOSED IN PRODUCTION
# =============================================================================

IS_PRODUCTION = bool(os.environ.get('RAILWAY_ENVIRONMENT') or os.environ.get('PRODUCTION'))

if IS_PRODUCTION:
    SECRET_KEY = _require('SECRET_KEY')
    DEBUG = False
    ALLOWED_HOSTS = _env_list('ALLOWED_HOSTS', _require('ALLOWED_HOSTS'))
    # e.g. https://crm.up.railway.app
    CSRF_TRUSTED_ORIGINS = _env_list('CSRF_TRUSTED_ORIGINS', _require('CSRF_TRUSTED_ORIGINS'))
    CSRF_COOKIE_SECURE = True
    SESSION_COOKIE_SECURE = True
    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = 'DENY'
else:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'django-insecure-crm-local-only')
    DEBUG = os.environ.get('DEBUG', 'True').lower() in ('true', '1', 'yes')
    ALLOWED_HOSTS = _env_list('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver')


# =============================================================================
# APPLICATION
# No admin, no auth: the board and the intake form are the whole surface.
# =============================================================================

INSTALLED_APPS = [
    'whitenoise.runserver_nostatic',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'crm_app',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'crm_django.urls'
WSGI_APPLICATION = 'crm_django.wsgi.application'

TEMPLATES = [{
    'BACKEND': 'django.template.backends.django.DjangoTemplates',
    'DIRS': [],
    'APP_DIRS': True,
    'OPTIONS': {
        'context_processors': [
            'django.template.context_processors.request',
            'django.contrib.messages.context_processors.messages',
            'crm_django.context_processors.app_context',
        ],
    },
}]


# =============================================================================
# DATABASE
# Django owns no business tables; db.py talks to DATABASE_URL directly.
# The entry below only exists so Django's checks have a backend to report.
# =============================================================================

DATABASES = {
    'default': dj_database_url.config(default='sqlite:///db.sqlite3', conn_max_age=600),
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Flash messages only; nothing else is kept between requests
SESSION_ENGINE = 'django.contrib.sessions.backends.signed_cookies'
SESSION_COOKIE_AGE = 60 * 60 * 24  # 1 day
SESSION_COOKIE_HTTPONLY = True


# =============================================================================
# LOCALE AND DISPLAY
# =============================================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.environ.get('CRM_TIME_ZONE', 'America/Sao_Paulo')
USE_I18N = True
USE_TZ = True

CRM_CURRENCY_SYMBOL = os.environ.get('CRM_CURRENCY_SYMBOL', 'R$')


# =============================================================================
# STATIC FILES (served by whitenoise)
# =============================================================================

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'
STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'whitenoise.storage.CompressedStaticFilesStorage'},
}


# =============================================================================
# LOGGING - stdout only, picked up by the platform log drain
# =============================================================================

_APP_LOG_LEVEL = os.environ.get('CRM_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {'format': '%(asctime)s [%(name)s] %(levelname)s %(message)s'},
    },
    'handlers': {
        'console': {'class': 'logging.StreamHandler', 'formatter': 'simple'},
    },
    'root': {'handlers': ['console'], 'level': 'WARNING'},
    'loggers': {
        'django.request': {'handlers': ['console'], 'level': 'ERROR', 'propagate': False},
        # Application code: services/*, views, templatetags
        **{
            name: {'handlers': ['console'], 'level': _APP_LOG_LEVEL, 'propagate': False}
            for name in ('services', 'crm_app')
        },
    },
}
