"""
Background sweep that evicts sessions, queues and index entries left idle past
the session timeout (crashed producers, abandoned consumers).

- Candidates are snapshotted under the relay lock, then evicted one by one so a
  sweep never holds the lock for a full scan.
- Eviction is routine: logged at INFO by the relay, counted here.
"""
import asyncio
import logging
from typing import Any, Optional

from relay.services.live_broadcast import LiveBroadcastRelay

logger = logging.getLogger("relay.reaper")


class Reaper:
    def __init__(self, relay: LiveBroadcastRelay, interval: float = 300.0):
        self._relay = relay
        self._interval = interval
        self._running = False
        self._tasks: set[asyncio.Task[Any]] = set()
        self.stats = {
            "sweeps": 0,
            "sessions_evicted": 0,
            "queues_evicted": 0,
            "channels_evicted": 0,
            "errors": 0,
            "last_sweep_at": None,
        }

    @property
    def running(self) -> bool:
        return self._running

    def _spawn(self, coro: Any, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._spawn(self._sweep_loop(), "relay-reaper")
        logger.info(
            "Reaper started: interval=%.0fs timeout=%.0fs",
            self._interval,
            self._relay.session_timeout,
        )

    async def stop(self) -> None:
        self._running = False
        for t in list(self._tasks):
            t.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Reaper stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                self.sweep()
            except Exception as exc:
                self.stats["errors"] += 1
                logger.warning("sweep error: %s", exc)

    def sweep(self, now: Optional[float] = None) -> int:
        """Run one pass and return how many entries were evicted."""
        now = self._relay.now() if now is None else now
        candidates = self._relay.stale_candidates(now)

        sessions = sum(self._relay.evict_stale_session(sid, now) for sid in candidates.sessions)
        queues = sum(self._relay.evict_stale_queue(cid, now) for cid in candidates.queues)
        channels = sum(self._relay.evict_stale_channel(key, now) for key in candidates.channels)

        self.stats["sweeps"] += 1
        self.stats["sessions_evicted"] += sessions
        self.stats["queues_evicted"] += queues
        self.stats["channels_evicted"] += channels
        self.stats["last_sweep_at"] = now

        cleaned = sessions + queues + channels
        if cleaned:
            logger.info("Cleaned up %d old broadcast items", cleaned)
        return cleaned
