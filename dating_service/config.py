import os
from functools import lru_cache
from pathlib import Path as _Path

from dotenv import load_dotenv as _load_dotenv
from pydantic import BaseModel, Field

_load_dotenv(dotenv_path=_Path(__file__).resolve().parent.parent / ".env", override=False)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _redis_pubsub_enabled_default() -> bool:
    explicit = os.getenv("REDIS_PUBSUB_ENABLED")
    if explicit is not None:
        return explicit.lower() in ("1", "true", "yes")
    return bool(os.getenv("REDIS_URL"))


class Settings(BaseModel):
    # Support multiple common env var names for Mongo connection string
    mongo_uri: str = Field(
        default_factory=lambda: (
            os.getenv("MONGO_URI")
            or os.getenv("MONGODB_URI")
            or os.getenv("MONGO_URL")
            or ""
        )
    )
    mongo_db: str = Field(default_factory=lambda: os.getenv("MONGO_DB_NAME", "dating_app"))
    # Optional: provide a non-SRV fallback URI (e.g., mongodb://127.0.0.1:27017)
    mongo_alt_uri: str = Field(default_factory=lambda: os.getenv("MONGO_ALT_URI", ""))
    mongo_direct: bool = Field(default_factory=lambda: _env_flag("MONGO_DIRECT"))
    frontend_url: str = Field(default_factory=lambda: os.getenv("FRONTEND_URL", "http://localhost:3000"))

    # Auth
    jwt_secret: str = Field(default_factory=lambda: os.getenv("JWT_SECRET", "change-me"))
    auth_token_ttl: int = Field(default_factory=lambda: int(os.getenv("AUTH_TOKEN_TTL", str(7 * 24 * 3600))))
    auth_rate_limit_window: int = Field(default_factory=lambda: int(os.getenv("AUTH_RATE_LIMIT_WINDOW", "300")))
    auth_rate_limit_max: int = Field(default_factory=lambda: int(os.getenv("AUTH_RATE_LIMIT_MAX", "10")))
    password_reset_ttl: int = Field(default_factory=lambda: int(os.getenv("PASSWORD_RESET_TTL", "3600")))
    admin_token: str = Field(default_factory=lambda: os.getenv("ADMIN_TOKEN", ""))

    # Swipes
    daily_swipe_limit: int = Field(default_factory=lambda: int(os.getenv("DAILY_SWIPE_LIMIT", "50")))

    # Web Push (VAPID)
    vapid_public_key: str = Field(default_factory=lambda: os.getenv("VAPID_PUBLIC_KEY", ""))
    vapid_private_key: str = Field(default_factory=lambda: os.getenv("VAPID_PRIVATE_KEY", ""))
    vapid_subject: str = Field(default_factory=lambda: os.getenv("VAPID_SUBJECT", "mailto:admin@example.com"))

    # Email
    smtp_host: str = Field(default_factory=lambda: os.getenv("SMTP_HOST", ""))
    smtp_port: int = Field(default_factory=lambda: int(os.getenv("SMTP_PORT", "587")))
    smtp_user: str = Field(default_factory=lambda: os.getenv("SMTP_USER", ""))
    smtp_password: str = Field(default_factory=lambda: os.getenv("SMTP_PASSWORD", ""))
    smtp_use_tls: bool = Field(default_factory=lambda: _env_flag("SMTP_USE_TLS", "true"))
    email_from: str = Field(default_factory=lambda: os.getenv("EMAIL_FROM", "noreply@datingapp.com"))

    # Redis (caching + pub/sub)
    redis_url: str = Field(default_factory=lambda: os.getenv("REDIS_URL", ""))
    redis_pubsub_enabled: bool = Field(default_factory=_redis_pubsub_enabled_default)
    redis_pubsub_prefix: str = Field(default_factory=lambda: os.getenv("REDIS_PUBSUB_PREFIX", "dating-app"))

    # Background jobs (Celery over Redis)
    celery_broker_url: str = Field(
        default_factory=lambda: os.getenv("CELERY_BROKER_URL") or os.getenv("REDIS_URL") or "redis://localhost:6379/0"
    )
    celery_result_backend: str = Field(
        default_factory=lambda: os.getenv("CELERY_RESULT_BACKEND") or os.getenv("REDIS_URL") or "redis://localhost:6379/0"
    )
    queue_prefix: str = Field(default_factory=lambda: os.getenv("QUEUE_PREFIX", "dating-app"))
    jobs_enabled: bool = Field(default_factory=lambda: _env_flag("JOBS_ENABLED", "true"))


@lru_cache()
def get_settings() -> Settings:
    return Settings()
