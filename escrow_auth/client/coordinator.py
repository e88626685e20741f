"""
Refresh coordinator.

Calls the refresh endpoint and rewrites the stored token pair. At most one
refresh request is in flight at a time: a second caller awaits the first
call's outcome instead of issuing its own request.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from escrow_auth.client.clock import Clock, LoopClock
from escrow_auth.client.token_store import TokenStore
from escrow_auth.exceptions import (
    InvalidRefreshToken,
    NetworkError,
    ParseError,
    ServerError,
)
from escrow_auth.services import token_codec
from escrow_auth.services.tokens import TokenPair, format_expiry

logger = logging.getLogger(__name__)

REJECTED_STATUSES = {400, 401, 403}


class RefreshCoordinator:
    """
    Exchanges a refresh token for a new token pair.

    `client` is an httpx.AsyncClient owned by the caller; `endpoint` is
    resolved against the client's base_url when relative. `clock` turns a
    relative `expires_in` into an absolute expiry and must be the clock
    the scheduler measures against.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_store: TokenStore,
        endpoint: str = "/auth/refresh",
        clock: Optional[Clock] = None,
        timeout: float = 10.0,
    ):
        self._client = client
        self._token_store = token_store
        self._endpoint = endpoint
        self._clock = clock or LoopClock()
        self.timeout = timeout
        self._inflight: Optional[asyncio.Task] = None
        self.request_count = 0

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Refresh the token pair.

        Raises InvalidRefreshToken, NetworkError or ServerError. Concurrent
        calls share one request and all see the same result.
        """
        if self._inflight is None or self._inflight.done():
            task = asyncio.ensure_future(self._do_refresh(refresh_token))
            task.add_done_callback(self._clear_inflight)
            self._inflight = task
        else:
            logger.debug("Refresh already in flight, joining it")

        # shield: one waiter being cancelled must not cancel the shared call
        return await asyncio.shield(self._inflight)

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _do_refresh(self, refresh_token: str) -> TokenPair:
        self.request_count += 1
        try:
            response = await self._client.post(
                self._endpoint,
                json={"refreshToken": refresh_token},
                timeout=self.timeout,
            )
        except httpx.TransportError as e:
            logger.warning("Token refresh failed to reach server: %s", e)
            raise NetworkError(f"Could not reach refresh endpoint: {e}") from e
        except httpx.HTTPError as e:
            logger.warning("Token refresh request failed: %s", e)
            raise ServerError(f"Refresh request failed: {e}") from e

        if response.status_code in REJECTED_STATUSES:
            logger.info("Refresh token rejected (HTTP %d)", response.status_code)
            raise InvalidRefreshToken(_error_message(response) or "Invalid refresh token")

        if response.status_code >= 400:
            logger.warning("Token refresh failed with HTTP %d", response.status_code)
            raise ServerError(
                _error_message(response) or f"Refresh failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ServerError("Refresh response is not JSON", status_code=response.status_code) from e

        pair = _pair_from_body(body, self._clock.now())
        self._token_store.replace(pair)
        logger.info("Access token refreshed, expires at %s", pair.expires_at)
        return pair


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("error") or body.get("detail")
    return None


def _pair_from_body(body: Any, now: float) -> TokenPair:
    """
    Build a TokenPair from either response shape:
    {token, refreshToken, expiresAt} or {access_token, refresh_token, expires_in}.

    `expires_in` is counted from `now`.
    """
    if not isinstance(body, dict):
        raise ServerError("Refresh response is not a JSON object")

    access_token = body.get("token") or body.get("access_token")
    refresh_token = body.get("refreshToken") or body.get("refresh_token")
    if not all(isinstance(t, str) and t for t in (access_token, refresh_token)):
        raise ServerError("Refresh response is missing tokens")

    expires_at = body.get("expiresAt")
    if not isinstance(expires_at, str) or not expires_at:
        expires_at = _expiry_from(access_token, body.get("expires_in"), now)

    return TokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
    )


def _expiry_from(access_token: str, expires_in: Any, now: float) -> str:
    """Expiry from the token's exp claim, else from expires_in."""
    try:
        exp = token_codec.parse(access_token).payload.get("exp")
    except ParseError:
        exp = None

    if not _is_number(exp):
        if not _is_number(expires_in):
            raise ServerError("Refresh response has no expiry")
        exp = now + expires_in

    try:
        return format_expiry(exp)
    except (OverflowError, OSError, ValueError) as e:
        raise ServerError(f"Refresh response has an unusable expiry: {exp!r}") from e


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
