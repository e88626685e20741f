"""
Bearer token codec.

Splits a signed token into header, payload and signature and answers
questions about its claims (identity, expiry). Nothing here verifies the
signature or touches the network: the client uses this to decide *when*
to refresh, the server verifies tokens separately.

All times are epoch seconds as floats.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from escrow_auth.exceptions import IdentityError, ParseError


@dataclass(frozen=True)
class ParsedToken:
    """Decoded token segments."""

    header: dict[str, Any]
    payload: dict[str, Any]
    signature: str


@dataclass(frozen=True)
class Identity:
    """Identity claims carried by an access token."""

    user_id: str
    role: str
    permissions: tuple[str, ...]


def _decode_segment(segment: str) -> dict[str, Any]:
    """Decode one base64url segment into a JSON object."""
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, ValueError) as e:
        raise ParseError(f"Segment is not valid base64url: {e}") from e

    try:
        value = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"Segment is not valid JSON: {e}") from e

    if not isinstance(value, dict):
        raise ParseError("Segment does not decode to a JSON object")
    return value


def parse(token: str) -> ParsedToken:
    """
    Parse a token into its three segments.

    Raises ParseError unless the token has exactly three dot-separated
    segments and the first two decode to JSON objects.
    """
    if not isinstance(token, str):
        raise ParseError("Token must be a string")

    parts = token.split(".")
    if len(parts) != 3:
        raise ParseError(f"Expected 3 token segments, got {len(parts)}")

    header_segment, payload_segment, signature = parts
    if not header_segment or not payload_segment:
        raise ParseError("Token header and payload must not be empty")

    return ParsedToken(
        header=_decode_segment(header_segment),
        payload=_decode_segment(payload_segment),
        signature=signature,
    )


def is_valid_format(token: str) -> bool:
    """True if parse() would succeed."""
    try:
        parse(token)
    except ParseError:
        return False
    return True


def extract_identity(payload: dict[str, Any]) -> Identity:
    """
    Pull identity claims from a token payload.

    `userId` falls back to the standard `sub` claim. Missing claims raise
    IdentityError instead of defaulting.
    """
    user_id = payload.get("userId", payload.get("sub"))
    if user_id is None or user_id == "":
        raise IdentityError("userId")

    role = payload.get("role")
    if not role:
        raise IdentityError("role")

    permissions = payload.get("permissions")
    if not isinstance(permissions, list):
        raise IdentityError("permissions")

    return Identity(
        user_id=str(user_id),
        role=str(role),
        permissions=tuple(str(p) for p in permissions),
    )


def _exp(payload: dict[str, Any]) -> Optional[float]:
    exp = payload.get("exp")
    # bool is an int subclass, reject it explicitly
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


def is_expired(payload: dict[str, Any], now: float) -> bool:
    """True iff now >= exp. A missing exp counts as expired."""
    exp = _exp(payload)
    if exp is None:
        return True
    return now >= exp


def seconds_until_expiry(payload: dict[str, Any], now: float) -> float:
    """Seconds left before exp; negative once expired, -inf without exp."""
    exp = _exp(payload)
    if exp is None:
        return float("-inf")
    return exp - now


def is_expiring_soon(payload: dict[str, Any], now: float, within_seconds: float = 300) -> bool:
    return seconds_until_expiry(payload, now) <= within_seconds


def expiration_time(payload: dict[str, Any]) -> Optional[datetime]:
    exp = _exp(payload)
    if exp is None:
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


def token_age(payload: dict[str, Any], now: float) -> Optional[float]:
    """Seconds since `iat`, or None when the token carries no issue time."""
    iat = payload.get("iat")
    if isinstance(iat, bool) or not isinstance(iat, (int, float)):
        return None
    return now - float(iat)
