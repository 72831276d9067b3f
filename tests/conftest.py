"""
Test Configuration
==================

Pytest fixtures for the live broadcast relay: a manual clock, a manual timer
scheduler whose due callbacks tests fire explicitly, and a relay built on both.
"""

import pytest

from relay.services import LiveBroadcastRelay, Reaper


class ManualClock:
    """Wall clock that only moves when a test advances it."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualTimer:
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Collects timers; ``run_due`` fires the ones whose deadline has passed."""

    def __init__(self, clock: ManualClock):
        self._clock = clock
        self.timers: list[ManualTimer] = []

    def call_later(self, delay, callback) -> ManualTimer:
        timer = ManualTimer(self._clock() + delay, callback)
        self.timers.append(timer)
        return timer

    def cancel_all(self) -> None:
        for t in self.timers:
            t.cancel()

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def run_due(self) -> int:
        due = [t for t in self.pending if t.due <= self._clock()]
        self.timers = [t for t in self.pending if t not in due]
        for t in due:
            t.callback()
        return len(due)


GRACE = 30.0
TIMEOUT = 600.0


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def relay(clock, scheduler):
    return LiveBroadcastRelay(
        scheduler,
        clock=clock,
        max_frames=5,
        max_frame_bytes=16,
        session_timeout=TIMEOUT,
        stop_grace=GRACE,
    )


@pytest.fixture
def reaper(relay):
    return Reaper(relay, interval=0.01)


@pytest.fixture
def started(relay):
    """An active broadcast on tourA from adm1 to drv1; yields its session id."""
    result = relay.start_session("tourA", "adm1", "drv1")
    assert result.success
    return result.session_id
