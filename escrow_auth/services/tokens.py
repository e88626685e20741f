"""
Access token issuing.

Signs short-lived access tokens for a session and derives the matching
refresh token. The refresh token is `refresh_<sessionId>`: it is a lookup
key for the session, not an independent secret.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from jose import jwt

from escrow_auth.config import Settings, get_settings
from escrow_auth.services.session import SessionRecord

REFRESH_TOKEN_PREFIX = "refresh_"


@dataclass(frozen=True)
class TokenPair:
    """Access + refresh token handed to a client."""

    access_token: str
    refresh_token: str
    expires_at: str  # ISO-8601, mirrors the access token's exp


def refresh_token_for(session_id: str) -> str:
    return f"{REFRESH_TOKEN_PREFIX}{session_id}"


def session_id_from_refresh_token(refresh_token: str) -> Optional[str]:
    """Recover the session id, or None if the value isn't a refresh token."""
    if not refresh_token or not refresh_token.startswith(REFRESH_TOKEN_PREFIX):
        return None
    session_id = refresh_token[len(REFRESH_TOKEN_PREFIX) :]
    return session_id or None


def format_datetime_js(dt: datetime) -> str:
    """
    Format datetime to match JavaScript's toISOString().

    Example: "2025-12-08T09:01:16.715Z". Naive datetimes are taken as UTC.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    formatted = dt.strftime("%Y-%m-%dT%H:%M:%S")
    ms = dt.microsecond // 1000
    return f"{formatted}.{ms:03d}Z"


def format_expiry(exp: float) -> str:
    return format_datetime_js(datetime.fromtimestamp(exp, tz=timezone.utc))


class TokenIssuer:
    """Signs access tokens with the configured secret and lifetime."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def ttl_seconds(self) -> int:
        return self.settings.access_token_ttl_seconds

    def issue(self, claims: dict[str, Any], now: float | None = None) -> str:
        """
        Sign `claims` as an access token.

        `iat` and `exp` are filled in unless the caller already set them.
        """
        if now is None:
            now = time.time()
        to_encode = dict(claims)
        to_encode.setdefault("iat", int(now))
        to_encode.setdefault("exp", int(now) + self.ttl_seconds)
        return jwt.encode(
            to_encode,
            self.settings.jwt_secret,
            algorithm=self.settings.jwt_algorithm,
        )

    def verify(self, token: str) -> dict[str, Any]:
        """Verify signature and expiry, returning the claims (raises JWTError)."""
        return jwt.decode(
            token,
            self.settings.jwt_secret,
            algorithms=[self.settings.jwt_algorithm],
            audience=self.settings.jwt_audience,
            issuer=self.settings.jwt_issuer,
        )

    def claims_for(self, session: SessionRecord) -> dict[str, Any]:
        return {
            "userId": session.user_id,
            "email": session.user_email,
            "role": session.user_role,
            "permissions": sorted(session.permissions),
            "iss": self.settings.jwt_issuer,
            "aud": self.settings.jwt_audience,
        }

    def mint_pair(self, session: SessionRecord, now: float | None = None) -> TokenPair:
        """Issue a fresh access token for the session's identity snapshot."""
        if now is None:
            now = time.time()
        exp = int(now) + self.ttl_seconds
        access_token = self.issue({**self.claims_for(session), "exp": exp}, now=now)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token_for(session.session_id),
            expires_at=format_expiry(exp),
        )
