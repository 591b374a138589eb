"""
Process configuration loaded from environment variables.

Usage:
    from billing_engine.config import get_settings

    settings = get_settings()
    settings.free_plan_bytes  # 1073741824
"""

import logging
import os
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from billing_engine.constants import (
    FIFTEEN_MINS_EXPIRATION_IN_SECONDS,
    FOUR_HOURS_EXPIRATION_IN_SECONDS,
    FREE_PLAN_BYTES_SPACE,
    VERIFICATION_CHARGE,
)

logger = logging.getLogger(__name__)


def _normalize_database_url(database_url: Optional[str]) -> Optional[str]:
    # Handle Render's postgres:// URL format (SQLAlchemy requires postgresql://)
    if database_url and database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


@dataclass(frozen=True)
class Settings:
    """Immutable settings snapshot, built once at process start."""

    database_url: Optional[str]
    redis_url: Optional[str]
    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    storage_gateway_url: str
    storage_gateway_secret: Optional[str]
    drive_gateway_url: str
    drive_gateway_user: Optional[str]
    drive_gateway_password: Optional[str]
    vpn_gateway_url: str
    vpn_gateway_secret: Optional[str]
    object_storage_url: str
    object_storage_secret: Optional[str]
    gateway_public_key: Optional[str]
    jwt_secret: Optional[str]
    free_plan_bytes: int = FREE_PLAN_BYTES_SPACE
    verification_charge_cents: int = VERIFICATION_CHARGE
    subscription_cache_ttl: int = FIFTEEN_MINS_EXPIRATION_IN_SECONDS
    used_coupons_cache_ttl: int = FOUR_HOURS_EXPIRATION_IN_SECONDS
    user_tier_cache_ttl: int = FIFTEEN_MINS_EXPIRATION_IN_SECONDS
    env: str = "development"

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from the process environment.

        Raises:
            ValueError: If a required setting is missing in production
        """
        settings = cls(
            database_url=_normalize_database_url(os.getenv("DATABASE_URL")),
            redis_url=os.getenv("REDIS_URL"),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
            storage_gateway_url=os.getenv("STORAGE_GATEWAY_URL", "http://localhost:8002"),
            storage_gateway_secret=os.getenv("STORAGE_GATEWAY_SECRET"),
            drive_gateway_url=os.getenv("DRIVE_GATEWAY_URL", "http://localhost:8000"),
            drive_gateway_user=os.getenv("DRIVE_GATEWAY_USER"),
            drive_gateway_password=os.getenv("DRIVE_GATEWAY_PASSWORD"),
            vpn_gateway_url=os.getenv("VPN_GATEWAY_URL", "http://localhost:8003"),
            vpn_gateway_secret=os.getenv("VPN_GATEWAY_SECRET"),
            object_storage_url=os.getenv("OBJECT_STORAGE_URL", "http://localhost:8004"),
            object_storage_secret=os.getenv("OBJECT_STORAGE_SECRET"),
            gateway_public_key=os.getenv("GATEWAY_PUBLIC_KEY"),
            jwt_secret=os.getenv("JWT_SECRET"),
            free_plan_bytes=int(os.getenv("FREE_PLAN_BYTES", FREE_PLAN_BYTES_SPACE)),
            verification_charge_cents=int(os.getenv("VERIFICATION_CHARGE_CENTS", VERIFICATION_CHARGE)),
            subscription_cache_ttl=int(
                os.getenv("SUBSCRIPTION_CACHE_TTL", FIFTEEN_MINS_EXPIRATION_IN_SECONDS)
            ),
            used_coupons_cache_ttl=int(
                os.getenv("USED_COUPONS_CACHE_TTL", FOUR_HOURS_EXPIRATION_IN_SECONDS)
            ),
            user_tier_cache_ttl=int(
                os.getenv("USER_TIER_CACHE_TTL", FIFTEEN_MINS_EXPIRATION_IN_SECONDS)
            ),
            env=os.getenv("ENV", "development").lower(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Fail fast on settings that production cannot run without."""
        if not self.is_production:
            return

        required = {
            "DATABASE_URL": self.database_url,
            "STRIPE_SECRET_KEY": self.stripe_secret_key,
            "STRIPE_WEBHOOK_SECRET": self.stripe_webhook_secret,
            "STORAGE_GATEWAY_SECRET": self.storage_gateway_secret,
            "GATEWAY_PUBLIC_KEY": self.gateway_public_key,
            "JWT_SECRET": self.jwt_secret,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(sorted(missing))}"
            )


_settings: Optional[Settings] = None
_settings_lock = Lock()


def get_settings() -> Settings:
    """Get the process settings, loading them on first use."""
    global _settings
    if _settings is None:
        with _settings_lock:
            if _settings is None:
                _settings = Settings.from_env()
                logger.info("Settings loaded", extra={"env": _settings.env})
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (tests)."""
    global _settings
    with _settings_lock:
        _settings = None
