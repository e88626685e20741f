"""
Token refresh client.

Typical wiring:

    async with httpx.AsyncClient(base_url="https://bank.example") as http:
        scheduler = build_scheduler(http, on_session_end=go_to_login)
        scheduler.start_session(pair_from_login)
        ...
        scheduler.update_activity()   # forward user interactions
        ...
        scheduler.destroy()           # on logout / shutdown
"""

from typing import Callable, Optional

import httpx

from escrow_auth.client.activity import (
    ActivityTracker,
    FileStorageSlot,
    MemoryStorageSlot,
    StorageSlot,
)
from escrow_auth.client.clock import Clock, LoopClock
from escrow_auth.client.coordinator import RefreshCoordinator
from escrow_auth.client.scheduler import RefreshScheduler, SchedulerState
from escrow_auth.client.token_store import TokenStore
from escrow_auth.config import Settings, get_settings


def build_scheduler(
    http: httpx.AsyncClient,
    *,
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    activity_slot: Optional[StorageSlot] = None,
    token_store: Optional[TokenStore] = None,
    on_session_end: Optional[Callable[[], None]] = None,
) -> RefreshScheduler:
    """
    Wire a scheduler from settings.

    The coordinator and scheduler share one clock so a relative
    `expires_in` is measured on the same timeline as the refresh timer.
    """
    settings = settings or get_settings()
    clock = clock or LoopClock()
    token_store = token_store or TokenStore()
    coordinator = RefreshCoordinator(
        http,
        token_store,
        endpoint=settings.refresh_endpoint_url,
        clock=clock,
        timeout=settings.refresh_request_timeout_seconds,
    )
    return RefreshScheduler(
        coordinator,
        ActivityTracker(activity_slot),
        token_store,
        clock,
        lookahead_seconds=settings.refresh_lookahead_seconds,
        idle_threshold_seconds=settings.idle_threshold_seconds,
        session_timeout_seconds=settings.idle_session_timeout_seconds,
        warning_seconds=settings.session_warning_seconds,
        on_session_end=on_session_end,
    )


__all__ = [
    "ActivityTracker",
    "Clock",
    "FileStorageSlot",
    "LoopClock",
    "MemoryStorageSlot",
    "RefreshCoordinator",
    "RefreshScheduler",
    "SchedulerState",
    "StorageSlot",
    "TokenStore",
    "build_scheduler",
]
