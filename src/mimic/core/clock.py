"""
Time source for the polling loops.

Loops never call ``time.time()`` or ``asyncio.sleep()`` directly; they go
through a ``Clock`` so tests can drive many ticks without waiting.
"""
import asyncio
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Wall-clock seconds plus an awaitable sleep."""

    def now(self) -> float:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Real time."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
