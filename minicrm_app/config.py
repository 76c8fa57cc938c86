# config.py
from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _env_str(name: str, default: str) -> str:
    value = (os.getenv(name) or "").strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    try:
        value = int((os.getenv(name) or "").strip())
    except ValueError:
        return default
    return value if value > 0 else default


def _env_bool(name: str, default: bool) -> bool:
    value = (os.getenv(name) or "").strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in _env_str(name, default).split(",") if item.strip()]


@dataclass
class AppConfig:
    database_url: str = "sqlite:///./crm.db"
    environment: str = "development"
    version: str = "1.0.0"

    jwt_secret_key: str = ""
    jwt_refresh_secret_key: str = ""
    jwt_expiration_hours: int = 24
    refresh_expiration_days: int = 7

    allowed_origins: list[str] = field(default_factory=lambda: ["*"])
    rate_limit_enabled: bool = True
    rate_limit: str = "1200/minute"
    auth_rate_limit: str = "10/minute"
    max_body_bytes: int = 1024 * 1024

    log_level: str = "INFO"

    create_default_admin: bool = True
    admin_username: str = "admin"
    admin_email: str = "admin@example.com"
    admin_password: str = "admin123"

    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_recycle: int = 3600

    health_cache_seconds: int = 10
    bcrypt_rounds: int = 12

    def __post_init__(self):
        if not self.jwt_secret_key:
            logger.warning("JWT_SECRET_KEY not set, generating a per-process key (not for production)")
            self.jwt_secret_key = secrets.token_urlsafe(48)
        if not self.jwt_refresh_secret_key:
            self.jwt_refresh_secret_key = "refresh-" + self.jwt_secret_key
        # bcrypt accepts cost factors 4..31
        self.bcrypt_rounds = min(max(self.bcrypt_rounds, 4), 31)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            database_url=_env_str("DATABASE_URL", "sqlite:///./crm.db"),
            environment=_env_str("ENV", "development"),
            version=_env_str("APP_VERSION", "1.0.0"),
            jwt_secret_key=_env_str("JWT_SECRET_KEY", ""),
            jwt_refresh_secret_key=_env_str("JWT_REFRESH_SECRET_KEY", ""),
            jwt_expiration_hours=_env_int("JWT_EXPIRATION_HOURS", 24),
            refresh_expiration_days=_env_int("REFRESH_TOKEN_EXPIRATION_DAYS", 7),
            allowed_origins=_env_list("ALLOWED_ORIGINS", "*"),
            rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", True),
            rate_limit=_env_str("RATE_LIMIT", "1200/minute"),
            auth_rate_limit=_env_str("AUTH_RATE_LIMIT", "10/minute"),
            max_body_bytes=_env_int("MAX_BODY_BYTES", 1024 * 1024),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
            create_default_admin=_env_bool("CREATE_DEFAULT_ADMIN", True),
            admin_username=_env_str("ADMIN_USERNAME", "admin"),
            admin_email=_env_str("ADMIN_EMAIL", "admin@example.com"),
            admin_password=_env_str("ADMIN_PASSWORD", "admin123"),
            db_pool_size=_env_int("DB_POOL_SIZE", 10),
            db_max_overflow=_env_int("DB_MAX_OVERFLOW", 20),
            db_pool_recycle=_env_int("DB_POOL_RECYCLE", 3600),
            health_cache_seconds=_env_int("HEALTH_CACHE_SECONDS", 10),
            bcrypt_rounds=_env_int("BCRYPT_ROUNDS", 12),
        )
