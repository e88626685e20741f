"""
Authentication dependencies.

The registry, issuer and user directory are built once in create_app()
and stored on app.state; routes reach them through these dependencies so
tests can swap any of them with app.dependency_overrides.
"""

from typing import Optional

from fastapi import Request

from escrow_auth.config import Settings
from escrow_auth.services.auth import UserDirectory
from escrow_auth.services.session import SessionRegistry
from escrow_auth.services.tokens import TokenIssuer


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.session_registry


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_user_directory(request: Request) -> UserDirectory:
    return request.app.state.user_directory


async def get_session_id(request: Request) -> Optional[str]:
    """
    Extract session ID from cookie.

    Accepts both `sessionId` and the older `session_id` cookie name.
    """
    settings = get_app_settings(request)
    cookies = request.cookies
    return cookies.get(settings.session_cookie_name) or cookies.get(settings.legacy_session_cookie_name)


def get_client_ip(request: Request) -> str:
    """Best-effort client address, honouring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host
    return "unknown"
