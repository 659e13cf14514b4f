"""
Runtime settings loaded from environment variables.

Required variables are validated for presence at startup. The app must
not start half-configured: get_settings(validate=True) raises
ConfigurationError listing every missing variable.

Usage:
    from fxacademy.config.settings import get_settings

    settings = get_settings()
    settings.paystack_secret_key
"""

import logging
import os
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

from fxacademy.platform.errors import ConfigurationError

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = (
    "DATABASE_URL",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SUPABASE_JWT_SECRET",
    "PAYSTACK_SECRET_KEY",
)

DEFAULT_CURRENCY = "USD"
DEFAULT_RENEWAL_WINDOW_DAYS = 3
PAYSTACK_DEFAULT_BASE_URL = "https://api.paystack.co"


def normalize_database_url(database_url: str) -> str:
    """
    Normalize a database URL for SQLAlchemy.

    Handles Render/Supabase style postgres:// URLs by selecting the
    psycopg 3 driver.
    """
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+psycopg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return database_url


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Application settings. Build with load_settings()."""

    database_url: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None

    paystack_secret_key: Optional[str] = None
    paystack_public_key: Optional[str] = None
    paystack_webhook_secret: Optional[str] = None
    paystack_base_url: str = PAYSTACK_DEFAULT_BASE_URL
    payment_currency: str = DEFAULT_CURRENCY

    app_base_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:5173"
    cors_origins: List[str] = field(default_factory=list)

    owner_emails: FrozenSet[str] = frozenset()
    renewal_window_days: int = DEFAULT_RENEWAL_WINDOW_DAYS
    catalog_config_path: Optional[str] = None

    def missing_required(self) -> List[str]:
        """Return the names of required variables that are unset."""
        values = {
            "DATABASE_URL": self.database_url,
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_ANON_KEY": self.supabase_anon_key,
            "SUPABASE_JWT_SECRET": self.supabase_jwt_secret,
            "PAYSTACK_SECRET_KEY": self.paystack_secret_key,
        }
        return [name for name in REQUIRED_ENV_VARS if not values[name]]

    def validate(self) -> None:
        """
        Fail fast when required configuration is missing.

        Raises:
            ConfigurationError: naming every missing variable
        """
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                "Missing required environment variables: "
                + ", ".join(missing)
                + ". Set them before starting the API.",
                missing=missing,
            )
        if len(self.payment_currency) != 3:
            raise ConfigurationError(
                f"PAYMENT_CURRENCY must be an ISO 4217 code, got '{self.payment_currency}'"
            )

    @property
    def webhook_secret(self) -> Optional[str]:
        """Paystack signs webhooks with the secret key unless overridden."""
        return self.paystack_webhook_secret or self.paystack_secret_key

    @property
    def payment_callback_url(self) -> str:
        return f"{self.frontend_url.rstrip('/')}/payment/callback"

    def is_owner_email(self, email: Optional[str]) -> bool:
        if not email:
            return False
        return email.strip().lower() in self.owner_emails


def load_settings() -> Settings:
    """Read settings from the environment."""
    database_url = os.getenv("DATABASE_URL")
    renewal_raw = os.getenv("RENEWAL_WINDOW_DAYS")
    try:
        renewal_window_days = int(renewal_raw) if renewal_raw else DEFAULT_RENEWAL_WINDOW_DAYS
    except ValueError:
        raise ConfigurationError(
            f"RENEWAL_WINDOW_DAYS must be an integer, got '{renewal_raw}'"
        )

    return Settings(
        database_url=normalize_database_url(database_url) if database_url else None,
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_anon_key=os.getenv("SUPABASE_ANON_KEY"),
        supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET"),
        paystack_secret_key=os.getenv("PAYSTACK_SECRET_KEY"),
        paystack_public_key=os.getenv("PAYSTACK_PUBLIC_KEY"),
        paystack_webhook_secret=os.getenv("PAYSTACK_WEBHOOK_SECRET"),
        paystack_base_url=os.getenv("PAYSTACK_BASE_URL", PAYSTACK_DEFAULT_BASE_URL),
        payment_currency=os.getenv("PAYMENT_CURRENCY", DEFAULT_CURRENCY).upper(),
        app_base_url=os.getenv("APP_BASE_URL", "http://localhost:8000"),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS", "http://localhost:5173")),
        owner_emails=frozenset(e.lower() for e in _split_csv(os.getenv("OWNER_EMAILS"))),
        renewal_window_days=renewal_window_days,
        catalog_config_path=os.getenv("CATALOG_CONFIG_PATH"),
    )


_settings: Optional[Settings] = None


def get_settings(validate: bool = False) -> Settings:
    """
    Get the settings singleton.

    Args:
        validate: raise ConfigurationError if required variables are missing
    """
    global _settings
    if _settings is None:
        _settings = load_settings()
    if validate:
        _settings.validate()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (tests and reloads)."""
    global _settings
    _settings = None
