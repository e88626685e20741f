"""
Refresh scheduler.

Keeps an access token alive by refreshing it `lookahead_seconds` before
it expires, but only while the user is active.

States:
    IDLE        nothing scheduled yet
    ARMED       a token is held; a timer is pending, or the last fire was
                suspended because the user was idle
    REFRESHING  a refresh call is in flight
    STOPPED     destroyed or the session ended; nothing fires

There is never more than one pending timer: every arm cancels the previous
one first. A fire while idle does not re-arm; the next update_activity()
catches up instead.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from escrow_auth.client.activity import ActivityTracker
from escrow_auth.client.clock import Clock, TimerHandle
from escrow_auth.client.coordinator import RefreshCoordinator
from escrow_auth.client.token_store import TokenStore
from escrow_auth.exceptions import InvalidRefreshToken, ParseError, RefreshError, ServerError
from escrow_auth.services import token_codec
from escrow_auth.services.tokens import TokenPair

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    REFRESHING = "refreshing"
    STOPPED = "stopped"


class RefreshScheduler:
    """
    Orchestrates token refresh timers.

    `on_session_end` is called once when a refresh fails for good (the
    server no longer knows the session); the host uses it to route the
    user to login.
    """

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        activity: ActivityTracker,
        token_store: TokenStore,
        clock: Clock,
        *,
        lookahead_seconds: float = 60,
        idle_threshold_seconds: float = 600,
        retry_delay_seconds: float = 60,
        session_timeout_seconds: float = 1800,
        warning_seconds: float = 300,
        on_session_end: Optional[Callable[[], None]] = None,
    ):
        self._coordinator = coordinator
        self._activity = activity
        self._token_store = token_store
        self._clock = clock
        self.lookahead_seconds = lookahead_seconds
        self.idle_threshold_seconds = idle_threshold_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self.session_timeout_seconds = session_timeout_seconds
        self.warning_seconds = warning_seconds
        self._on_session_end = on_session_end

        self._state = SchedulerState.IDLE
        self._timer: Optional[TimerHandle] = None
        self._pair: Optional[TokenPair] = None
        self._suspended = False
        # bumped by destroy() and by start_session() during a refresh;
        # refresh results from an older generation are dropped
        self._generation = 0
        self._refresh_task: Optional[asyncio.Task] = None

    # ---------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    @property
    def suspended(self) -> bool:
        """True when a fire was skipped and nothing is scheduled until activity resumes."""
        return self._suspended

    @property
    def refresh_task(self) -> Optional[asyncio.Task]:
        """The task running the current (or last) refresh, for callers that want to await it."""
        return self._refresh_task

    # ---------------------------------------------------------
    # Public operations
    # ---------------------------------------------------------

    def start_session(self, pair: TokenPair) -> None:
        """
        Adopt a token pair and arm the refresh timer for it.

        Fires at exp - lookahead, or immediately if that moment has passed.
        A refresh still in flight for an earlier pair is superseded.
        """
        if self._state == SchedulerState.REFRESHING:
            self._generation += 1

        self._pair = pair
        self._token_store.replace(pair)
        remaining = self._seconds_until_expiry(pair)
        delay = max(remaining - self.lookahead_seconds, 0.0)

        self._state = SchedulerState.ARMED
        self._suspended = False
        self._arm(delay)
        logger.debug("Refresh armed in %.1fs (token expires in %.1fs)", delay, remaining)

    def update_activity(self) -> None:
        """
        Record user activity.

        If an earlier fire was suspended because the user was idle and the
        token is already inside the lookahead window, refresh right away.
        """
        if self._state == SchedulerState.STOPPED:
            return

        now = self._clock.now()
        self._activity.record_activity(now)

        if self._state != SchedulerState.ARMED or self._timer is not None:
            return

        if self._pair is None:
            return

        if self._seconds_until_expiry(self._pair) < self.lookahead_seconds:
            logger.info("Activity resumed inside refresh window, refreshing now")
            self._begin_refresh()

    async def extend_session(self) -> None:
        """
        User asked to stay signed in: record activity and refresh now.

        Joins a refresh that is already running. A failed extension only
        ends the session when the access token has already expired.
        """
        if self._state == SchedulerState.STOPPED or self._pair is None:
            return

        self._activity.record_activity(self._clock.now())
        if self._state != SchedulerState.REFRESHING:
            self._begin_refresh(user_initiated=True)

        await asyncio.shield(self._refresh_task)

    def should_show_warning(self, now: Optional[float] = None) -> bool:
        """True once the user has been idle for the timeout minus the warning window."""
        last = self._activity.last_activity_at()
        if last is None:
            return False
        if now is None:
            now = self._clock.now()
        return now - last > self.session_timeout_seconds - self.warning_seconds

    def destroy(self) -> None:
        """Cancel any pending timer and stop. Safe to call repeatedly."""
        if self._state == SchedulerState.STOPPED:
            return
        self._cancel_timer()
        self._generation += 1
        self._suspended = False
        self._state = SchedulerState.STOPPED
        logger.debug("Refresh scheduler stopped")

    # ---------------------------------------------------------
    # Timer handling
    # ---------------------------------------------------------

    def _arm(self, delay: float) -> None:
        self._cancel_timer()
        self._timer = self._clock.call_later(delay, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if self._state != SchedulerState.ARMED:
            return

        if not self._activity.is_active(self._clock.now(), self.idle_threshold_seconds):
            # wait for update_activity() to resume
            self._suspended = True
            logger.info("User idle at refresh time, suspending refresh")
            return

        self._begin_refresh()

    # ---------------------------------------------------------
    # Refresh path
    # ---------------------------------------------------------

    def _begin_refresh(self, user_initiated: bool = False) -> None:
        self._cancel_timer()
        self._suspended = False
        self._state = SchedulerState.REFRESHING
        refresh = self._run_refresh(self._pair.refresh_token, self._generation, user_initiated)
        self._refresh_task = asyncio.ensure_future(refresh)

    async def _run_refresh(self, refresh_token: str, generation: int, user_initiated: bool) -> None:
        try:
            new_pair = await self._coordinator.refresh(refresh_token)
        except RefreshError as e:
            if generation == self._generation:
                self._handle_failure(e, user_initiated)
            return
        except Exception as e:
            logger.exception("Unexpected error during token refresh")
            if generation == self._generation:
                self._handle_failure(ServerError(f"Unexpected refresh error: {e}"), user_initiated)
            return

        if generation != self._generation:
            self._discard(new_pair)
            return

        self._activity.record_activity(self._clock.now())
        self.start_session(new_pair)

    def _discard(self, stale: TokenPair) -> None:
        """Drop a refresh result that belongs to a stopped or superseded session."""
        if self._state == SchedulerState.STOPPED:
            self._token_store.clear()
        elif self._token_store.current is stale:
            # the coordinator already wrote it; put the newer pair back
            self._token_store.replace(self._pair)
        logger.debug("Discarding stale refresh result")

    def _handle_failure(self, error: RefreshError, user_initiated: bool = False) -> None:
        remaining = self._seconds_until_expiry(self._pair)
        rejected = isinstance(error, InvalidRefreshToken) and not user_initiated

        if rejected or remaining <= 0:
            logger.warning("Token refresh failed permanently: %s", error)
            self._end_session()
            return

        # retry on the next cycle, but never past the token's expiry
        logger.warning("Token refresh failed, retrying in up to %.0fs: %s", self.retry_delay_seconds, error)
        self._state = SchedulerState.ARMED
        self._arm(min(self.retry_delay_seconds, remaining))

    def _end_session(self) -> None:
        self.destroy()
        self._token_store.clear()
        if self._on_session_end is not None:
            self._on_session_end()

    # ---------------------------------------------------------
    # Expiry math
    # ---------------------------------------------------------

    def _seconds_until_expiry(self, pair: TokenPair) -> float:
        """
        Seconds before the access token expires.

        Reads exp from the token; falls back to the pair's expires_at and
        treats an unreadable token as already expired.
        """
        now = self._clock.now()
        try:
            payload = token_codec.parse(pair.access_token).payload
        except ParseError:
            payload = None

        if payload is not None and "exp" in payload:
            return token_codec.seconds_until_expiry(payload, now)

        try:
            expires_at = datetime.fromisoformat(pair.expires_at.replace("Z", "+00:00"))
        except (AttributeError, ValueError):
            return float("-inf")
        return expires_at.timestamp() - now
