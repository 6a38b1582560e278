from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    """Schedules callbacks; the only real-time dependency of the timer."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall: ...


class LoopClock:
    """Clock backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(delay, callback)
