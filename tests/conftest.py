"""
Shared test fixtures for the Escrow Auth test suite.
"""

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from escrow_auth.config import Settings
from escrow_auth.services.session import SessionRegistry

START = 1_700_000_000.0


class FakeTimer:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeClock:
    """Manual clock: timers only fire when the test calls advance()."""

    def __init__(self, start=START):
        self._now = start
        self._timers = []

    def now(self):
        return self._now

    def call_later(self, delay, callback):
        timer = FakeTimer(self._now + max(delay, 0.0), callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds):
        """Move time forward, firing due timers in order."""
        target = self._now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self._timers.remove(timer)
            self._now = timer.when
            timer.callback()
        self._now = target


class ManualDatetimeClock:
    """Datetime clock for the session registry."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


def encode_segment(obj):
    raw = json.dumps(obj, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def make_token(payload, header=None):
    """Unsigned token with the given payload (the client never checks signatures)."""
    header = header or {"alg": "HS256", "typ": "JWT"}
    return f"{encode_segment(header)}.{encode_segment(payload)}.c2lnbmF0dXJl"


@pytest.fixture
def test_settings():
    """Settings configured for testing."""
    return Settings(
        environment="test",
        jwt_secret="test-jwt-secret",
        bootstrap_admin_username="admin",
        bootstrap_admin_email="admin@example.com",
        bootstrap_admin_password="SecurePass123!",
        debug=True,
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def registry_clock():
    return ManualDatetimeClock()


@pytest.fixture
def registry(test_settings, registry_clock):
    return SessionRegistry(test_settings, clock=registry_clock)


@pytest.fixture
def app(test_settings):
    from escrow_auth.main import create_app

    return create_app(test_settings)


@pytest_asyncio.fixture
async def app_client(app):
    """Create a test client bound to the ASGI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def logged_in(app_client):
    """Log in as the bootstrap admin and return (session_id, body)."""
    response = await app_client.post(
        "/auth/login",
        json={"username": "admin", "password": "SecurePass123!"},
    )
    assert response.status_code == 200
    session_id = response.cookies["sessionId"]
    app_client.cookies.clear()
    app_client.cookies.set("sessionId", session_id)
    return session_id, response.json()
