"""
Clock and cancellable one-shot timers used for deferred teardown.

Relay operations run in the server threadpool, so scheduling is thread-safe:
timers are armed on the owning event loop via ``call_soon_threadsafe``.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Optional, Protocol, Set

logger = logging.getLogger("relay.timers")

Clock = Callable[[], float]


def wall_clock() -> float:
    return time.time()


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerScheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def cancel_all(self) -> None: ...


class _LoopTimer:
    def __init__(self, scheduler: "AsyncioTimerScheduler", callback: Callable[[], None]):
        self._scheduler = scheduler
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def _arm(self, delay: float) -> None:
        if self._cancelled:
            return
        self._handle = self._scheduler.loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        self._scheduler._discard(self)
        if self._cancelled:
            return
        try:
            self._callback()
        except Exception:
            logger.exception("timer callback failed")

    def cancel(self) -> None:
        self._cancelled = True
        self._scheduler._discard(self)
        handle = self._handle
        if handle is not None:
            self._scheduler.loop.call_soon_threadsafe(handle.cancel)


class AsyncioTimerScheduler:
    """Runs callbacks on ``loop`` after a delay; safe to call from any thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self._timers: Set[_LoopTimer] = set()
        self._lock = threading.Lock()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _LoopTimer(self, callback)
        with self._lock:
            self._timers.add(timer)
        self.loop.call_soon_threadsafe(timer._arm, max(0.0, delay))
        return timer

    def cancel_all(self) -> None:
        with self._lock:
            timers, self._timers = list(self._timers), set()
        for t in timers:
            t.cancel()
        if timers:
            logger.debug("cancelled %d pending timers", len(timers))

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._timers)

    def _discard(self, timer: _LoopTimer) -> None:
        with self._lock:
            self._timers.discard(timer)
