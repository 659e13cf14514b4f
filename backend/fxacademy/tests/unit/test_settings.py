"""
Tests for environment settings.
"""

import pytest

from fxacademy.config.settings import (
    REQUIRED_ENV_VARS,
    load_settings,
    normalize_database_url,
)
from fxacademy.platform.errors import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch):
    for name in REQUIRED_ENV_VARS + (
        "OWNER_EMAILS",
        "RENEWAL_WINDOW_DAYS",
        "PAYMENT_CURRENCY",
        "PAYSTACK_WEBHOOK_SECRET",
        "CORS_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def full_env(clean_env):
    clean_env.setenv("DATABASE_URL", "postgres://u:p@db.example:5432/academy")
    clean_env.setenv("SUPABASE_URL", "https://project.supabase.test")
    clean_env.setenv("SUPABASE_ANON_KEY", "anon")
    clean_env.setenv("SUPABASE_JWT_SECRET", "secret")
    clean_env.setenv("PAYSTACK_SECRET_KEY", "sk_test_x")
    return clean_env


class TestValidation:

    def test_missing_variables_are_all_named(self, clean_env):
        clean_env.setenv("DATABASE_URL", "sqlite:///:memory:")
        settings = load_settings()

        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate()

        assert exc_info.value.missing == [
            "SUPABASE_URL",
            "SUPABASE_ANON_KEY",
            "SUPABASE_JWT_SECRET",
            "PAYSTACK_SECRET_KEY",
        ]
        assert "PAYSTACK_SECRET_KEY" in str(exc_info.value)

    def test_complete_environment_validates(self, full_env):
        load_settings().validate()

    def test_bad_currency_rejected(self, full_env):
        full_env.setenv("PAYMENT_CURRENCY", "dollars")
        with pytest.raises(ConfigurationError):
            load_settings().validate()

    def test_bad_renewal_window_rejected(self, full_env):
        full_env.setenv("RENEWAL_WINDOW_DAYS", "soon")
        with pytest.raises(ConfigurationError):
            load_settings()


class TestValues:

    def test_database_url_normalized(self, full_env):
        assert load_settings().database_url == "postgresql+psycopg://u:p@db.example:5432/academy"

    @pytest.mark.parametrize("raw,expected", [
        ("postgresql://h/db", "postgresql+psycopg://h/db"),
        ("sqlite:///local.db", "sqlite:///local.db"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_database_url(raw) == expected

    def test_owner_emails_are_lowercased(self, full_env):
        full_env.setenv("OWNER_EMAILS", " Founder@Academy.test , cofounder@academy.test")
        settings = load_settings()
        assert settings.is_owner_email("founder@academy.test")
        assert settings.is_owner_email("COFOUNDER@academy.test ")
        assert not settings.is_owner_email("student@academy.test")
        assert not settings.is_owner_email(None)

    def test_webhook_secret_defaults_to_secret_key(self, full_env):
        assert load_settings().webhook_secret == "sk_test_x"
        full_env.setenv("PAYSTACK_WEBHOOK_SECRET", "whsec")
        assert load_settings().webhook_secret == "whsec"

    def test_defaults(self, full_env):
        settings = load_settings()
        assert settings.payment_currency == "USD"
        assert settings.renewal_window_days == 3
        assert settings.cors_origins == ["http://localhost:5173"]
