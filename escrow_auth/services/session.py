"""
Session registry.

Authoritative in-memory map from session id to session record. Every
operation is synchronous and O(1) against the map (per-user listings are
O(sessions of that user)), so a read-modify-write never spans an await
and requests touching the same session are serialised by the event loop.

"Not found" is never an exception here: lookups return None and the
HTTP layer turns that into a 401.
"""

import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from fastapi import Response

from escrow_auth.config import Settings, get_settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionRecord:
    """Server-side session. Identity fields are a snapshot taken at login."""

    session_id: str
    user_id: str
    user_email: str
    user_role: str
    permissions: frozenset[str]
    client_ip: str
    user_agent: str
    created_at: datetime
    expires_at: datetime
    last_activity: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def __repr__(self) -> str:
        return f"<SessionRecord {self.session_id[:8]}... user={self.user_id}>"


class SessionRegistry:
    """
    Creates, reads, updates and destroys sessions.

    One instance is created per application (see main.create_app) and
    reached through the get_session_registry dependency.
    """

    def __init__(self, settings: Settings | None = None, clock: Clock = utc_now):
        self.settings = settings or get_settings()
        self._clock = clock
        self._sessions: dict[str, SessionRecord] = {}
        self._user_sessions: dict[str, dict[str, None]] = {}  # insertion ordered
        self._cleanup_task: Optional[asyncio.Task] = None

    def _generate_session_id(self) -> str:
        """Generate a secure random session ID."""
        return secrets.token_urlsafe(32)

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.session_ttl_seconds)

    # ---------------------------------------------------------
    # Core operations
    # ---------------------------------------------------------

    def create_session(
        self,
        user_id: str,
        user_email: str,
        user_role: str,
        permissions: list[str] | set[str] | frozenset[str],
        client_ip: str,
        user_agent: str,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[str, datetime]:
        """
        Create a new session for a user.

        Returns (session_id, expires_at). If the user now holds more than
        max_sessions_per_user sessions, the oldest ones are destroyed.
        """
        session_id = self._generate_session_id()
        while session_id in self._sessions:
            session_id = self._generate_session_id()

        now = self._clock()
        record = SessionRecord(
            session_id=session_id,
            user_id=user_id,
            user_email=user_email,
            user_role=user_role,
            permissions=frozenset(permissions),
            client_ip=client_ip,
            user_agent=user_agent,
            created_at=now,
            expires_at=now + self.session_ttl,
            last_activity=now,
            metadata=dict(metadata or {}),
        )

        self._sessions[session_id] = record
        self._user_sessions.setdefault(user_id, {})[session_id] = None
        self._enforce_max_sessions_per_user(user_id)

        logger.info("Session created for user=%s sid=%s...", user_id, session_id[:8])
        return session_id, record.expires_at

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        """
        Get a session by ID.

        Returns None if the session doesn't exist or is expired. Expired
        records are purged on the way out.
        """
        if not session_id:
            return None

        record = self._sessions.get(session_id)
        if record is None:
            return None

        if record.is_expired(self._clock()):
            self._remove(session_id)
            return None

        return record

    def update_session_metadata(self, session_id: str, patch: dict[str, Any]) -> None:
        """
        Merge `patch` into the session metadata and bump last_activity.

        Metadata is advisory, so an unknown session is silently ignored.
        """
        record = self.get_session(session_id)
        if record is None:
            return

        record.metadata = {**record.metadata, **patch}
        record.last_activity = self._clock()

    def destroy_session(self, session_id: str) -> None:
        """Delete a session. Unknown ids are ignored."""
        if self._remove(session_id):
            logger.info("Session destroyed sid=%s...", session_id[:8])

    def set_session_cookie(self, response: Response, session_id: str) -> Response:
        """Attach the session id cookie (http-only, same-site strict)."""
        response.set_cookie(
            key=self.settings.session_cookie_name,
            value=session_id,
            max_age=self.settings.session_ttl_seconds,
            httponly=True,
            samesite="strict",
            path="/",
        )
        return response

    def clear_session_cookie(self, response: Response) -> Response:
        response.delete_cookie(key=self.settings.session_cookie_name, path="/")
        response.delete_cookie(key=self.settings.legacy_session_cookie_name, path="/")
        return response

    # ---------------------------------------------------------
    # Session management
    # ---------------------------------------------------------

    def extend_session(self, session_id: str, extension_minutes: int = 60) -> bool:
        """Push expires_at out. This is the only way expiry ever moves."""
        record = self.get_session(session_id)
        if record is None:
            return False

        record.expires_at = record.expires_at + timedelta(minutes=extension_minutes)
        record.last_activity = self._clock()
        return True

    def get_user_sessions(self, user_id: str) -> list[SessionRecord]:
        """Live sessions for a user, oldest first."""
        sessions = []
        for session_id in list(self._user_sessions.get(user_id, ())):
            record = self.get_session(session_id)
            if record is not None:
                sessions.append(record)
        return sorted(sessions, key=lambda s: s.created_at)

    def destroy_all_user_sessions(self, user_id: str) -> int:
        """Destroy every session of a user. Returns the number destroyed."""
        destroyed = 0
        for session_id in list(self._user_sessions.get(user_id, ())):
            if self._remove(session_id):
                destroyed += 1
        if destroyed:
            logger.info("Destroyed %d sessions for user=%s", destroyed, user_id)
        return destroyed

    def cleanup_expired_sessions(self) -> int:
        """
        Delete all expired sessions.

        Returns the number of sessions deleted.
        """
        now = self._clock()
        expired = [sid for sid, record in self._sessions.items() if record.is_expired(now)]
        for session_id in expired:
            self._remove(session_id)

        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        active = [r for r in self._sessions.values() if not r.is_expired(now)]
        total_users = len(self._user_sessions)
        return {
            "totalSessions": len(self._sessions),
            "activeSessions": len(active),
            "totalUsers": total_users,
            "averageSessionsPerUser": len(active) / total_users if total_users else 0,
        }

    def __len__(self) -> int:
        return len(self._sessions)

    # ---------------------------------------------------------
    # Background sweep
    # ---------------------------------------------------------

    def start_cleanup_task(self) -> None:
        """Start the background cleanup task."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop_cleanup_task(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None

    async def _cleanup_loop(self) -> None:
        """Periodically purge expired sessions."""
        while True:
            await asyncio.sleep(self.settings.session_cleanup_interval_seconds)
            self.cleanup_expired_sessions()

    # ---------------------------------------------------------
    # Internals
    # ---------------------------------------------------------

    def _remove(self, session_id: str) -> bool:
        record = self._sessions.pop(session_id, None)
        if record is None:
            return False

        user_sessions = self._user_sessions.get(record.user_id)
        if user_sessions is not None:
            user_sessions.pop(session_id, None)
            if not user_sessions:
                del self._user_sessions[record.user_id]
        return True

    def _enforce_max_sessions_per_user(self, user_id: str) -> None:
        limit = self.settings.max_sessions_per_user
        session_ids = self._user_sessions.get(user_id, {})
        if len(session_ids) <= limit:
            return

        # stable sort keeps insertion order for equal timestamps
        by_age = sorted(
            (self._sessions[sid] for sid in session_ids if sid in self._sessions),
            key=lambda s: s.created_at,
        )
        for record in by_age[: len(by_age) - limit]:
            self._remove(record.session_id)
            logger.info(
                "Evicted oldest session sid=%s... for user=%s (limit %d)",
                record.session_id[:8],
                user_id,
                limit,
            )
