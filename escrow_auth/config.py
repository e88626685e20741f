"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Escrow Auth API"
    debug: bool = False
    port: int = 8485
    environment: str = "development"  # "production" turns on secure cookies
    log_level: str = "INFO"

    # Access tokens
    jwt_secret: str = "fallback-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "escrow-app"
    jwt_audience: str = "escrow-users"
    # Issuer and scheduler must agree on these two
    access_token_ttl_seconds: int = 30 * 60
    refresh_lookahead_seconds: int = 60

    # Client activity
    idle_threshold_seconds: int = 10 * 60
    # idle time before the client considers the session abandoned, and how
    # long before that the "still there?" warning shows
    idle_session_timeout_seconds: int = 30 * 60
    session_warning_seconds: int = 5 * 60

    # Sessions
    session_timeout_minutes: int = 480  # 8 hours
    max_sessions_per_user: int = 5
    session_cleanup_interval_seconds: int = 5 * 60
    session_cookie_name: str = "sessionId"
    legacy_session_cookie_name: str = "session_id"
    auth_token_cookie_name: str = "AUTH_TOKEN"

    # Bootstrap account (until a real user store is wired in)
    bootstrap_admin_username: str = "admin"
    bootstrap_admin_email: str = "admin@example.com"
    bootstrap_admin_password: Optional[str] = "SecurePass123!"

    # Refresh client
    refresh_endpoint_url: str = "http://localhost:8485/auth/refresh"
    refresh_request_timeout_seconds: float = 10.0

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def secure_cookies(self) -> bool:
        """Only send the bearer-token cookie over HTTPS in production."""
        return self.is_production

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_timeout_minutes * 60


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
