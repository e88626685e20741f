"""
Authentication API router.
Handles login, token refresh, logout and session heartbeat.

Mounted at both /auth and /api/auth (see main.create_app).
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from escrow_auth.config import Settings
from escrow_auth.exceptions import UnauthorizedError, ValidationError
from escrow_auth.middleware.auth import (
    get_app_settings,
    get_client_ip,
    get_session_id,
    get_session_registry,
    get_token_issuer,
    get_user_directory,
)
from escrow_auth.schemas.auth import (
    HeartbeatResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    RefreshRequest,
    RefreshResponse,
    UserInfo,
)
from escrow_auth.services.auth import UserDirectory
from escrow_auth.services.session import SessionRecord, SessionRegistry
from escrow_auth.services.tokens import (
    TokenIssuer,
    format_datetime_js,
    session_id_from_refresh_token,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def build_user_info(session: SessionRecord) -> UserInfo:
    """Build the user block returned alongside tokens."""
    return UserInfo(
        id=session.user_id,
        email=session.user_email,
        role=session.user_role,
        permissions=sorted(session.permissions),
    )


def set_auth_token_cookie(response: Response, token: str, settings: Settings) -> None:
    """Mirror the bearer token into an http-only cookie for server-rendered requests."""
    response.set_cookie(
        key=settings.auth_token_cookie_name,
        value=token,
        max_age=settings.access_token_ttl_seconds,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="strict",
        path="/",
    )


# ---------------------------------------------------------
# Login / Refresh
# ---------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
async def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    registry: SessionRegistry = Depends(get_session_registry),
    issuer: TokenIssuer = Depends(get_token_issuer),
    users: UserDirectory = Depends(get_user_directory),
):
    """
    Authenticate with username and password.

    Creates a session, sets the session cookie and returns a token pair.
    """
    account = users.authenticate(data.username, data.password)
    if account is None:
        logger.info("Login failed for %s from %s", data.username, get_client_ip(request))
        raise UnauthorizedError("Invalid credentials")

    session_id, _ = registry.create_session(
        user_id=account.id,
        user_email=account.email,
        user_role=account.role.value,
        permissions=account.permissions,
        client_ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
    )
    session = registry.get_session(session_id)
    pair = issuer.mint_pair(session)

    registry.set_session_cookie(response, session_id)
    set_auth_token_cookie(response, pair.access_token, registry.settings)

    user = build_user_info(session)
    user.username = account.username

    return LoginResponse(
        token=pair.access_token,
        refreshToken=pair.refresh_token,
        expiresAt=pair.expires_at,
        user=user,
        permissions=user.permissions,
    )


@router.post("/auth/refresh", response_model=RefreshResponse)
async def refresh(
    data: RefreshRequest,
    response: Response,
    registry: SessionRegistry = Depends(get_session_registry),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """
    Exchange a refresh token for a new access token.

    The refresh token only names the session; the session's existence is
    what authorises the refresh. Session expiry is not moved.
    """
    if not data.refreshToken:
        raise ValidationError("Refresh token required")

    session_id = session_id_from_refresh_token(data.refreshToken)
    session = registry.get_session(session_id) if session_id else None
    if session is None:
        raise UnauthorizedError("Invalid refresh token")

    pair = issuer.mint_pair(session)
    registry.update_session_metadata(
        session_id,
        {"lastTokenRefresh": format_datetime_js(datetime.now(timezone.utc))},
    )
    set_auth_token_cookie(response, pair.access_token, registry.settings)

    return RefreshResponse(
        token=pair.access_token,
        refreshToken=pair.refresh_token,
        expiresAt=pair.expires_at,
        user=build_user_info(session),
    )


# ---------------------------------------------------------
# Logout / Heartbeat
# ---------------------------------------------------------


@router.post("/auth/logout", response_model=LogoutResponse)
async def logout(
    response: Response,
    session_id: Optional[str] = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
    settings: Settings = Depends(get_app_settings),
):
    """
    Log out the current user.

    Destroys the session (if any) and clears every identity cookie.
    """
    if session_id:
        registry.destroy_session(session_id)

    registry.clear_session_cookie(response)
    response.delete_cookie(key=settings.auth_token_cookie_name, path="/")

    return LogoutResponse()


@router.post("/auth/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    session_id: Optional[str] = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Record that the session is still in use.

    400 without a session cookie, 401 when the session no longer exists.
    """
    if not session_id:
        raise ValidationError("Session cookie required")

    if registry.get_session(session_id) is None:
        raise UnauthorizedError("Session not found")

    registry.update_session_metadata(
        session_id,
        {"lastHeartbeat": format_datetime_js(datetime.now(timezone.utc))},
    )
    session = registry.get_session(session_id)

    return HeartbeatResponse(
        expiresAt=format_datetime_js(session.expires_at),
        lastActivity=format_datetime_js(session.last_activity),
    )
