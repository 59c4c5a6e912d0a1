from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    app_env: str
    db_path: str
    base_url: str
    auth_url: str
    auth_service_key: str
    cron_secret: str
    ingest_api_key: str
    resend_api_key: str
    email_from: str
    openai_api_key: str
    digest_model: str
    youtube_api_key: str
    x_bearer_token: str
    max_sources_per_account: int
    source_warn_threshold: int
    invite_expiry_days: int
    invite_reminder_max: int
    invite_reminder_interval_hours: int
    full_article_timeout: float
    lookup_timeout: float
    job_log_enabled: bool

    @staticmethod
    def from_env() -> "Settings":
        def _s(name: str, default: str = "") -> str:
            return os.getenv(name, default).strip()

        def _b(name: str, default: str) -> bool:
            return os.getenv(name, default).strip() in ("1", "true", "True", "yes", "YES")

        def _i(name: str, default: str) -> int:
            return int(os.getenv(name, default).strip())

        def _f(name: str, default: str) -> float:
            return float(os.getenv(name, default).strip())

        return Settings(
            app_env=_s("APP_ENV", "dev"),
            db_path=_s("DB_PATH", "/app/_local/data/radar.db"),
            base_url=_s("BASE_URL", "http://localhost:8000").rstrip("/"),
            auth_url=_s("AUTH_URL").rstrip("/"),
            auth_service_key=_s("AUTH_SERVICE_KEY"),
            cron_secret=_s("CRON_SECRET"),
            ingest_api_key=_s("INGEST_API_KEY"),
            resend_api_key=_s("RESEND_API_KEY"),
            email_from=_s("EMAIL_FROM", "Radar <digest@radar.local>"),
            openai_api_key=_s("OPENAI_API_KEY"),
            digest_model=_s("DIGEST_MODEL", "gpt-4.1-mini"),
            youtube_api_key=_s("YOUTUBE_API_KEY"),
            x_bearer_token=_s("X_BEARER_TOKEN"),
            max_sources_per_account=_i("MAX_SOURCES_PER_ACCOUNT", "50"),
            source_warn_threshold=_i("SOURCE_WARN_THRESHOLD", "40"),
            invite_expiry_days=_i("INVITE_EXPIRY_DAYS", "7"),
            invite_reminder_max=_i("INVITE_REMINDER_MAX", "3"),
            invite_reminder_interval_hours=_i("INVITE_REMINDER_INTERVAL_HOURS", "24"),
            full_article_timeout=_f("FULL_ARTICLE_TIMEOUT", "15"),
            lookup_timeout=_f("LOOKUP_TIMEOUT", "8"),
            job_log_enabled=_b("JOB_LOG_ENABLED", "1"),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Process-wide settings, read from the environment once."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
