import os

from tasks.config import TASK_CONFIG

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


SECRET_KEY = os.environ.get(
    "DJANGO_SECRET_KEY", "__$1ud47e&nyso5h5o3fwnqu4+hfqcply9h$k*h2s34)hn5@nc"
)

DEBUG = os.environ.get("DJANGO_DEBUG", "true").lower() in ("1", "true", "yes")

ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "").split(",") if h]

APP_ENV = os.environ.get("APP_ENV", "local")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django.contrib.humanize",
    "widget_tweaks",
    "formtools",
    "apps.corecode",
    "apps.activity",
    "apps.students",
    "apps.staffs",
    "apps.enrollments",
    "apps.scheduling",
    "apps.result",
    "apps.finance",
    "apps.system",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "apps.corecode.middleware.SiteWideConfigs",
    "apps.corecode.middleware.MaintenanceModeMiddleware",
]

ROOT_URLCONF = "backoffice.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [
            os.path.join(BASE_DIR, "templates"),
        ],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
                "apps.corecode.context_processors.site_defaults",
            ],
        },
    },
]

WSGI_APPLICATION = "backoffice.wsgi.application"


# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases

DATABASES = {
    "default": {
        "ENGINE": os.environ.get("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.environ.get("DB_NAME", os.path.join(BASE_DIR, "db.sqlite3")),
        "USER": os.environ.get("DB_USER", ""),
        "PASSWORD": os.environ.get("DB_PASSWORD", ""),
        "HOST": os.environ.get("DB_HOST", ""),
        "PORT": os.environ.get("DB_PORT", ""),
    }
}

# Shared between web and worker processes: backup and update settings,
# update history and maintenance windows live here.
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.redis.RedisCache",
        "LOCATION": os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/2"),
        "KEY_PREFIX": "backoffice",
    }
}


# Password validation
# https://docs.djangoproject.com/en/4.2/ref/settings/#auth-password-validators

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]


# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)

DATA_UPLOAD_MAX_NUMBER_FIELDS = 10240

STATIC_URL = "/static/"

STATIC_ROOT = os.path.join(BASE_DIR, "staticfiles")

MEDIA_ROOT = os.path.join(BASE_DIR, "media")

MEDIA_URL = "/media/"

LOGOUT_REDIRECT_URL = "/"
LOGIN_REDIRECT_URL = '/'
LOGIN_URL = 'login'

AUTHENTICATION_BACKENDS = [
    'django.contrib.auth.backends.ModelBackend',
]

SESSION_SAVE_EVERY_REQUEST = True

SESSION_EXPIRE_AT_BROWSER_CLOSE = True

SESSION_COOKIE_AGE = 10800


# Storage locations used by the system console

STORAGE_DIR = os.environ.get("STORAGE_DIR", os.path.join(BASE_DIR, "storage"))

LOG_DIR = os.environ.get("LOG_DIR", os.path.join(STORAGE_DIR, "logs"))

BACKUP_ROOT = os.environ.get("BACKUP_ROOT", os.path.join(STORAGE_DIR, "backups"))

BACKUP_NAME = os.environ.get("BACKUP_NAME", "backoffice")

BACKUP_SOURCE_DIRS = ["apps", "backoffice", "tasks", "templates"]

MAINTENANCE_FLAG_FILE = os.path.join(STORAGE_DIR, "framework", "down")

MAINTENANCE_EXEMPT_PATHS = ["/accounts/login/", "/admin/", "/system/"]

VERSION_FILE = os.path.join(BASE_DIR, "version.txt")

os.makedirs(LOG_DIR, exist_ok=True)


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "[{asctime}] " + APP_ENV + ".{levelname}: {name} {message}",
            "datefmt": "%Y-%m-%d %H:%M:%S",
            "style": "{",
        },
    },
    "handlers": {
        "file": {
            "level": "INFO",
            "class": "logging.handlers.TimedRotatingFileHandler",
            "when": "W6",
            "interval": 4,
            "backupCount": 3,
            "encoding": "utf8",
            "filename": os.path.join(LOG_DIR, "backoffice.log"),
            "formatter": "verbose",
        },
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["file"],
            "level": "INFO",
            "propagate": True,
        },
        "apps": {
            "handlers": ["file", "console"],
            "level": "INFO",
            "propagate": False,
        },
        "system.tasks": {
            "handlers": ["file", "console"],
            "level": "INFO",
            "propagate": False,
        },
        "finance.tasks": {
            "handlers": ["file", "console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}

DEFAULT_AUTO_FIELD = "django.db.models.AutoField"


# Celery

CELERY_BROKER_URL = TASK_CONFIG['BROKER_URL']
CELERY_RESULT_BACKEND = TASK_CONFIG['RESULT_BACKEND']
CELERY_TASK_TRACK_STARTED = TASK_CONFIG['TASK_TRACK_STARTED']
CELERY_TASK_TIME_LIMIT = TASK_CONFIG['TASK_TIME_LIMIT']
CELERY_WORKER_CONCURRENCY = TASK_CONFIG['WORKER_CONCURRENCY']
CELERY_TASK_SERIALIZER = TASK_CONFIG['TASK_SERIALIZER']
CELERY_RESULT_SERIALIZER = TASK_CONFIG['RESULT_SERIALIZER']
CELERY_ACCEPT_CONTENT = TASK_CONFIG['ACCEPT_CONTENT']
CELERY_TIMEZONE = TASK_CONFIG['TIMEZONE']
CELERY_TASK_DEFAULT_QUEUE = TASK_CONFIG['DEFAULT_QUEUE']
CELERY_TASK_ALWAYS_EAGER = TASK_CONFIG['ALWAYS_EAGER']
CELERY_TASK_EAGER_PROPAGATES = TASK_CONFIG['ALWAYS_EAGER']


# Email

EMAIL_BACKEND = os.environ.get(
    "EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend"
)
DEFAULT_FROM_EMAIL = os.environ.get("DEFAULT_FROM_EMAIL", "noreply@school.local")
ADMINS = [
    ("Admin", email) for email in os.environ.get("ADMIN_EMAILS", "").split(",") if email
]


# Site Default values

SCHOOL_NAME = os.environ.get("SCHOOL_NAME", "School Back Office")
SITE_URL = os.environ.get("SITE_URL", "http://localhost:8000")
