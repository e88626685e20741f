"""Tests for application configuration."""

import pytest


def test_settings_defaults():
    """Verify default settings load without errors."""
    from escrow_auth.config import Settings

    settings = Settings(jwt_secret="secret")
    assert settings.app_name == "Escrow Auth API"
    assert settings.port == 8485
    assert settings.access_token_ttl_seconds == 1800
    assert settings.refresh_lookahead_seconds == 60
    assert settings.idle_threshold_seconds == 600
    assert settings.session_timeout_minutes == 480
    assert settings.max_sessions_per_user == 5
    assert settings.session_cookie_name == "sessionId"


def test_session_ttl_seconds():
    from escrow_auth.config import Settings

    settings = Settings(session_timeout_minutes=90)
    assert settings.session_ttl_seconds == 5400


@pytest.mark.parametrize(
    "environment,secure",
    [("production", True), ("PRODUCTION", True), ("development", False), ("test", False)],
)
def test_secure_cookies_only_in_production(environment, secure):
    from escrow_auth.config import Settings

    settings = Settings(environment=environment)
    assert settings.is_production is secure
    assert settings.secure_cookies is secure


def test_settings_from_environment(monkeypatch):
    """Environment variables override defaults."""
    from escrow_auth.config import Settings

    monkeypatch.setenv("ACCESS_TOKEN_TTL_SECONDS", "120")
    monkeypatch.setenv("IDLE_THRESHOLD_SECONDS", "30")
    monkeypatch.setenv("JWT_SECRET", "from-env")

    settings = Settings()
    assert settings.access_token_ttl_seconds == 120
    assert settings.idle_threshold_seconds == 30
    assert settings.jwt_secret == "from-env"


def test_get_settings_is_cached():
    from escrow_auth.config import get_settings

    assert get_settings() is get_settings()
