from pathlib import Path
import os
from dotenv import load_dotenv
from django.core.exceptions import ImproperlyConfigured

# -----------------------------------------------------
# Helpers
# -----------------------------------------------------
def env(name: str, default=None, *, required: bool = False):
    val = os.getenv(name, default)
    if required and (val is None or (isinstance(val, str) and val.strip() == "")):
        raise ImproperlyConfigured(f"Missing required environment variable: {name}")
    return val

def env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).lower() in {"1", "true", "yes", "on"}

def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ImproperlyConfigured(f"Environment variable {name} must be an integer, got {raw!r}")

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# Keep hosts explicit by default
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost").split(",") if h.strip()]

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "django.contrib.staticfiles",

    # Third-party
    "rest_framework",

    # Local
    "ingest",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "ingest_service.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
            ],
        },
    },
]

WSGI_APPLICATION = "ingest_service.wsgi.application"

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "ingest"),
            "USER": env("DB_USER", "ingest_user"),
            "PASSWORD": env("DB_PASSWORD", ""),
            "HOST": env("DB_HOST", "127.0.0.1"),
            "PORT": env("DB_PORT", "5432"),
            "CONN_MAX_AGE": int(env("DB_CONN_MAX_AGE", "60")),  # keep-alive
            "OPTIONS": {
                **({"sslmode": os.getenv("DB_SSLMODE")} if os.getenv("DB_SSLMODE") else {})
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# -----------------------------------------------------
# Django REST Framework
# -----------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "UNAUTHENTICATED_USER": None,
}

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOG_LEVEL = env("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "pipeline": {
            "format": "[{asctime}] {levelname} {name} ({threadName}): {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "pipeline",
        },
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "ingest": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "celery": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}

# -----------------------------------------------------
# Celery / Redis
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/0")
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = int(env("CELERY_TASK_TIME_LIMIT", str(60 * 15)))  # seconds

# -----------------------------------------------------
# Default PK type
# -----------------------------------------------------
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------
# S3 / MinIO (env-driven; no hardcoded secrets)
# -----------------------------------------------------
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or "http://127.0.0.1:9000"  # fine for local
S3_PUBLIC_ENDPOINT = os.getenv("S3_PUBLIC_ENDPOINT", S3_ENDPOINT_URL)
S3_REGION = os.getenv("S3_REGION", "us-east-1")
S3_BUCKET = os.getenv("S3_BUCKET", "media-local")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")          # set in .env for local
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")          # set in .env for local

# -----------------------------------------------------
# Ingest pipeline
# -----------------------------------------------------
PIPELINE_UPLOAD_ROOT = Path(env("PIPELINE_UPLOAD_ROOT", str(BASE_DIR / "uploads")))
PIPELINE_PENDING_DIR = Path(env("PIPELINE_PENDING_DIR", str(PIPELINE_UPLOAD_ROOT / "pending")))
PIPELINE_PROCESSING_DIR = Path(env("PIPELINE_PROCESSING_DIR", str(PIPELINE_UPLOAD_ROOT / "processing")))
PIPELINE_COMPLETED_DIR = Path(env("PIPELINE_COMPLETED_DIR", str(PIPELINE_UPLOAD_ROOT / "completed")))
PIPELINE_FAILED_DIR = Path(env("PIPELINE_FAILED_DIR", str(PIPELINE_UPLOAD_ROOT / "failed")))

PIPELINE_WORKERS = env_int("PIPELINE_WORKERS", 2)               # bundles in parallel
PIPELINE_EPISODE_WORKERS = env_int("PIPELINE_EPISODE_WORKERS", 2)  # episodes per show in parallel
PIPELINE_QUEUE_SIZE = env_int("PIPELINE_QUEUE_SIZE", 64)
PIPELINE_SETTLE_SECONDS = float(env("PIPELINE_SETTLE_SECONDS", "5"))
PIPELINE_POLL_SECONDS = float(env("PIPELINE_POLL_SECONDS", "30"))
PIPELINE_USE_WATCHER = env_bool("PIPELINE_USE_WATCHER", True)
PIPELINE_KILL_GRACE_SECONDS = float(env("PIPELINE_KILL_GRACE_SECONDS", "5"))
PIPELINE_MIN_VIDEO_BYTES = env_int("PIPELINE_MIN_VIDEO_BYTES", 1024 * 1024)

# Rendition ladder: static, never derived from the source video.
PIPELINE_SEGMENT_SECONDS = env_int("PIPELINE_SEGMENT_SECONDS", 6)
PIPELINE_AUDIO_BITRATE_KBPS = env_int("PIPELINE_AUDIO_BITRATE_KBPS", 128)
PIPELINE_RENDITIONS = [
    {"name": "high", "width": 1280, "height": 720, "max_bitrate_kbps": 2000, "buffer_kbps": 4000},
    {"name": "mid", "width": 854, "height": 480, "max_bitrate_kbps": 1000, "buffer_kbps": 2000},
    {"name": "low", "width": 640, "height": 360, "max_bitrate_kbps": 600, "buffer_kbps": 1200},
]

# Where the completed root is served from; artifact URLs are built on top of it.
PIPELINE_PUBLIC_BASE_URL = env("PIPELINE_PUBLIC_BASE_URL", "http://127.0.0.1:8000/uploads/completed").rstrip("/")
PIPELINE_PUBLISH_TO_S3 = env_bool("PIPELINE_PUBLISH_TO_S3", False)
PIPELINE_S3_PREFIX = env("PIPELINE_S3_PREFIX", "content").strip("/")

FFMPEG_BINARY = env("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY = env("FFPROBE_BINARY", "ffprobe")
