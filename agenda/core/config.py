"""
Centralized configuration module for application-wide settings.

Every setting is read from the environment through a small getter so tests can
patch ``os.environ`` and reload this module. ``create_app`` loads a ``.env``
file (python-dotenv) before the getters run.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


# ===========================
# Timezone Configuration
# ===========================


def get_app_timezone() -> ZoneInfo:
    """
    Get the application timezone from environment variable.

    Returns:
        ZoneInfo: Application timezone (defaults to UTC if not configured)

    Environment Variables:
        TZ: Timezone identifier (e.g., 'America/Mexico_City', 'UTC')
    """
    tz_name = os.getenv("TZ", "UTC")

    try:
        return ZoneInfo(tz_name)
    except Exception as e:
        logger.warning(
            f"Invalid timezone '{tz_name}' specified in TZ environment variable. "
            f"Falling back to UTC. Error: {e}"
        )
        return ZoneInfo("UTC")


APP_TZ = get_app_timezone()


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime. Services take this as their default clock."""
    return datetime.now(timezone.utc)


# ===========================
# Platform Admin Configuration
# ===========================


def get_admin_email() -> str:
    """
    Get the single email allowed to hold the platform admin role.

    Environment Variables:
        ADMIN_EMAIL: Email of the platform administrator
            Default: 'admin@agenda.local'
    """
    return os.getenv("ADMIN_EMAIL", "admin@agenda.local").strip().lower()


ADMIN_EMAIL = get_admin_email()


# ===========================
# License Monitoring Configuration
# ===========================


def get_license_sweep_interval() -> int:
    """
    Seconds between two license sweeps.

    Environment Variables:
        LICENSE_SWEEP_INTERVAL_SECONDS: Default 3600 (hourly)
    """
    raw = os.getenv("LICENSE_SWEEP_INTERVAL_SECONDS", "3600")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid LICENSE_SWEEP_INTERVAL_SECONDS, using 3600",
            extra={"context": {"value": raw}},
        )
        return 3600
    return max(value, 1)


def get_license_sweep_disabled() -> bool:
    """Sweeps are muted under TESTING or DISABLE_LICENSE_SWEEP."""
    return _env_flag("DISABLE_LICENSE_SWEEP") or _env_flag("TESTING", "0")


LICENSE_SWEEP_INTERVAL_SECONDS = get_license_sweep_interval()


def get_session_idle_timeout() -> int:
    """
    Seconds a signed-in session may go unused before it is released.

    Environment Variables:
        SESSION_IDLE_TIMEOUT_SECONDS: Default 28800 (8 hours), also the cookie lifetime
    """
    raw = os.getenv("SESSION_IDLE_TIMEOUT_SECONDS", "28800")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid SESSION_IDLE_TIMEOUT_SECONDS, using 28800",
            extra={"context": {"value": raw}},
        )
        return 28800
    return max(value, 60)


# ===========================
# Store Configuration
# ===========================


def get_store_backend() -> str:
    """
    Which persistent store adapter to build.

    Environment Variables:
        STORE_BACKEND: 'memory' (default) or 'sql'
        DATABASE_URL: SQLAlchemy URL used when STORE_BACKEND=sql
    """
    backend = os.getenv("STORE_BACKEND", "memory").strip().lower()
    if backend not in ("memory", "sql"):
        logger.warning(
            "Unknown STORE_BACKEND, falling back to memory",
            extra={"context": {"value": backend}},
        )
        return "memory"
    return backend


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./agenda.db")


# ===========================
# Security Configuration
# ===========================


def get_secret_key() -> str:
    secret = os.getenv("SECRET_KEY", "dev-secret-change-me")
    if os.getenv("FLASK_ENV") == "production" and secret == "dev-secret-change-me":
        raise ValueError("Production deployment requires SECRET_KEY to be set.")
    return secret


def get_rate_limit_enabled() -> bool:
    return _env_flag("RATE_LIMIT_ENABLED", "true") and not _env_flag("TESTING", "0")


@dataclass
class AppConfig:
    """Snapshot of the settings services need, injected instead of read globally."""

    admin_email: str = "admin@agenda.local"
    license_sweep_interval: int = 3600
    license_sweep_disabled: bool = False
    session_idle_timeout: int = 28800
    store_backend: str = "memory"
    database_url: str = "sqlite:///./agenda.db"
    testing: bool = False

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            admin_email=get_admin_email(),
            license_sweep_interval=get_license_sweep_interval(),
            license_sweep_disabled=get_license_sweep_disabled(),
            session_idle_timeout=get_session_idle_timeout(),
            store_backend=get_store_backend(),
            database_url=get_database_url(),
            testing=_env_flag("TESTING", "0"),
        )


def log_config(config: AppConfig) -> None:
    """
    Log the active configuration (without secrets).

    Should be called during application startup.
    """
    logger.info(
        "Configuration initialized",
        extra={
            "context": {
                "timezone": str(APP_TZ),
                "store_backend": config.store_backend,
                "license_sweep_interval": config.license_sweep_interval,
                "license_sweep_disabled": config.license_sweep_disabled,
                "session_idle_timeout": config.session_idle_timeout,
                "testing": config.testing,
            }
        },
    )
