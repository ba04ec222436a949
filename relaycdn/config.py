from dataclasses import dataclass, field
import os
import secrets


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
        return parsed if parsed > 0 else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
        return parsed if parsed > 0 else default
    except ValueError:
        return default


def _env_str(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    # Never defaulted: admin routes answer 503 until it is set.
    admin_password: str | None = None

    object_store_base_url: str | None = None
    object_store_token: str = ""
    object_store_timeout_seconds: float = 10.0
    public_base_url: str = "http://localhost:8000"

    ticket_secret: str = field(default_factory=lambda: secrets.token_urlsafe(32))
    ticket_ttl_seconds: int = 3600
    max_file_bytes: int = 100 * 1024 * 1024

    upload_rate_limit_per_hour: int = 20
    upload_rate_window_seconds: int = 60 * 60

    daily_quota_bytes: int = 1024 * 1024 * 1024
    daily_quota_uploads: int = 100
    quota_window_seconds: int = 24 * 60 * 60

    history_cap: int = 100
    reconcile_interval_minutes: int = 0


def load_settings() -> Settings:
    """Read every RELAYCDN setting from the environment."""
    ticket_secret = _env_str("TICKET_SECRET") or secrets.token_urlsafe(32)
    base_url = _env_str("OBJECT_STORE_BASE_URL")
    return Settings(
        admin_password=_env_str("ADMIN_PASSWORD"),
        object_store_base_url=base_url.rstrip("/") if base_url else None,
        object_store_token=os.getenv("OBJECT_STORE_TOKEN", "").strip(),
        object_store_timeout_seconds=_env_float("OBJECT_STORE_TIMEOUT_SECONDS", 10.0),
        public_base_url=(_env_str("PUBLIC_BASE_URL") or "http://localhost:8000").rstrip("/"),
        ticket_secret=ticket_secret,
        ticket_ttl_seconds=_env_int("TICKET_TTL_SECONDS", 3600),
        max_file_bytes=_env_int("MAX_FILE_BYTES", 100 * 1024 * 1024),
        upload_rate_limit_per_hour=_env_int("UPLOAD_RATE_LIMIT_PER_HOUR", 20),
        upload_rate_window_seconds=_env_int("UPLOAD_RATE_WINDOW_SECONDS", 60 * 60),
        daily_quota_bytes=_env_int("DAILY_QUOTA_BYTES", 1024 * 1024 * 1024),
        daily_quota_uploads=_env_int("DAILY_QUOTA_UPLOADS", 100),
        quota_window_seconds=_env_int("QUOTA_WINDOW_SECONDS", 24 * 60 * 60),
        history_cap=_env_int("HISTORY_CAP", 100),
        reconcile_interval_minutes=_env_int("RECONCILE_INTERVAL_MINUTES", 0),
    )
