"""
Time source and one-shot timers for the refresh client.

The scheduler only needs "what time is it" and "call me back in N
seconds"; LoopClock answers both from the running asyncio loop. Tests pass
a manual clock instead so timers fire when the test advances time.
"""

import asyncio
import time
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def now(self) -> float:
        """Current wall-clock time in epoch seconds."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run `callback` once after `delay` seconds."""
        ...


class LoopClock:
    """Wall clock + timers backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay, 0.0), callback)
