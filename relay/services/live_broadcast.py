"""
In-memory live audio relay: one producer (admin) to one consumer (driver).

- The producer pushes small audio frames; each frame lands in the session's ring
  buffer and in the bound consumer's queue. Both are bounded and drop oldest.
- The consumer polls; a poll drains its queue, or late-joins the channel's live
  session when it has no queue yet.
- Stop flips the session to stopping and tears it down after a grace delay, so
  a final poll still sees the end of the broadcast. The reaper evicts anything
  left idle past the session timeout.

All three stores are mutated only here, under one lock. Public methods never
raise; failures come back as results with ``success=False`` and a ``code``.
"""
import logging
import threading
import uuid
from typing import Callable, Dict, NamedTuple, Optional, TypeVar, Union

from relay.services.broadcast_index import BroadcastIndex
from relay.services.errors import (
    FrameTooLarge,
    Internal,
    InvalidArgument,
    RelayError,
    SessionNotActive,
    SessionNotFound,
)
from relay.services.models import (
    BroadcastIndexEntry,
    Frame,
    PollStatus,
    Session,
    SessionStatus,
    SubscriberQueue,
    frame_buffer,
)
from relay.services.queue_store import SubscriberQueueStore
from relay.services.results import (
    ActiveBroadcast,
    ActiveBroadcastResult,
    ActiveBroadcastsResult,
    AttachResult,
    BroadcastSummary,
    ChunkOut,
    DebugInfoResult,
    PullResult,
    PushResult,
    QueueSummary,
    RelayCounts,
    RelayResult,
    SessionSummary,
    StartResult,
    StatusResult,
    StopResult,
)
from relay.services.session_store import SessionStore
from relay.services.timers import Clock, TimerHandle, TimerScheduler, wall_clock

logger = logging.getLogger("relay.service")

R = TypeVar("R", bound=RelayResult)
Payload = Union[bytes, bytearray, memoryview]


class StaleCandidates(NamedTuple):
    sessions: list[str]
    queues: list[str]
    channels: list[str]

    @property
    def total(self) -> int:
        return len(self.sessions) + len(self.queues) + len(self.channels)


def _new_id(prefix: str, now: float) -> str:
    return f"{prefix}-{int(now * 1000)}-{uuid.uuid4().hex[:8]}"


def _require(**values: Optional[str]) -> None:
    for name, value in values.items():
        if not isinstance(value, str) or not value.strip():
            raise InvalidArgument(f"Missing {name}")


class LiveBroadcastRelay:
    """Sessions, subscriber queues and the channel index, kept consistent."""

    def __init__(
        self,
        scheduler: TimerScheduler,
        clock: Clock = wall_clock,
        max_frames: int = 30,
        max_frame_bytes: int = 1024 * 1024,
        session_timeout: float = 600.0,
        stop_grace: float = 30.0,
        default_mime_type: str = "audio/webm",
    ):
        if max_frames < 1:
            raise ValueError("max_frames must be >= 1")
        self._scheduler = scheduler
        self._clock = clock
        self.max_frames = max_frames
        self.max_frame_bytes = max_frame_bytes
        self.session_timeout = session_timeout
        self.stop_grace = stop_grace
        self.default_mime_type = default_mime_type

        self._lock = threading.Lock()
        self._sessions = SessionStore()
        self._queues = SubscriberQueueStore()
        self._index = BroadcastIndex()
        self._teardowns: Dict[str, TimerHandle] = {}
        self._closed = False

    def now(self) -> float:
        return self._clock()

    # ── Public operations ────────────────────────────────────

    def start_session(self, channel_key: str, producer_id: str, consumer_id: str) -> StartResult:
        return self._guard("start_session", StartResult, lambda: self._start(channel_key, producer_id, consumer_id))

    def push_frame(
        self, session_id: str, payload: Payload, mime_type: Optional[str] = None
    ) -> PushResult:
        return self._guard("push_frame", PushResult, lambda: self._push(session_id, payload, mime_type))

    def pull_frames(self, consumer_id: str, channel_key: Optional[str] = None) -> PullResult:
        return self._guard("pull_frames", PullResult, lambda: self._pull(consumer_id, channel_key))

    def stop_session(
        self, session_id: Optional[str] = None, channel_key: Optional[str] = None
    ) -> StopResult:
        return self._guard("stop_session", StopResult, lambda: self._stop(session_id, channel_key))

    def force_attach(self, consumer_id: str, session_id: str) -> AttachResult:
        return self._guard("force_attach", AttachResult, lambda: self._force_attach(consumer_id, session_id))

    def get_status(
        self,
        channel_key: Optional[str] = None,
        session_id: Optional[str] = None,
        consumer_id: Optional[str] = None,
    ) -> StatusResult:
        """Read-only snapshot; never touches liveness timestamps."""
        return self._guard("get_status", StatusResult, lambda: self._status(channel_key, session_id, consumer_id))

    def get_active_broadcasts(self) -> ActiveBroadcastsResult:
        return self._guard("get_active_broadcasts", ActiveBroadcastsResult, self._active_broadcasts)

    def get_active_broadcast(self, channel_key: str) -> ActiveBroadcastResult:
        return self._guard("get_active_broadcast", ActiveBroadcastResult, lambda: self._active_broadcast(channel_key))

    def get_debug_info(self) -> DebugInfoResult:
        return self._guard("get_debug_info", DebugInfoResult, self._debug_info)

    # ── Start / push / pull / stop ───────────────────────────

    def _start(self, channel_key: str, producer_id: str, consumer_id: str) -> StartResult:
        _require(tourId=channel_key, adminId=producer_id, driverId=consumer_id)
        superseded: Optional[str] = None
        with self._lock:
            now = self._clock()
            current = self._index.get(channel_key)
            if current is not None:
                old = self._sessions.get(current.session_id)
                if old is not None and old.is_active:
                    self._supersede_locked(old)
                    superseded = old.session_id

            # Undelivered frames follow the consumer only across a restart of
            # the same broadcast; any other join starts empty.
            previous = self._queues.get(consumer_id)
            carried: list[Frame] = []
            if (
                previous is not None
                and superseded is not None
                and previous.session_id == superseded
                and previous.channel_key == channel_key
            ):
                carried = list(previous.pending)

            session = Session(
                session_id=_new_id("session", now),
                channel_key=channel_key,
                producer_id=producer_id,
                consumer_id=consumer_id,
                created_at=now,
                last_activity_at=now,
                recent_frames=frame_buffer(self.max_frames),
            )
            self._sessions.put(session)
            self._queues.put(self._new_queue(consumer_id, session, now, carried))
            self._index.put(
                BroadcastIndexEntry(
                    channel_key=channel_key,
                    session_id=session.session_id,
                    producer_id=producer_id,
                    consumer_id=consumer_id,
                    started_at=now,
                )
            )
            counts = self._counts_locked()

        if superseded:
            logger.info("Broadcast superseded: session=%s tour=%s", superseded, channel_key)
        logger.info(
            "Broadcast started: session=%s tour=%s driver=%s admin=%s",
            session.session_id,
            channel_key,
            consumer_id,
            producer_id,
        )
        logger.debug(
            "relay state: sessions=%d queues=%d broadcasts=%d",
            counts.active_sessions,
            counts.active_driver_queues,
            counts.active_broadcasts,
        )
        return StartResult(session_id=session.session_id)

    def _supersede_locked(self, old: Session) -> None:
        old.status = SessionStatus.STOPPED
        self._index.set_status(old.channel_key, old.session_id, SessionStatus.STOPPED)
        for queue in self._queues.bound_to_session(old.session_id):
            queue.status = SessionStatus.STOPPED
        self._schedule_teardown_locked(old.session_id)

    def _push(self, session_id: str, payload: Payload, mime_type: Optional[str]) -> PushResult:
        if not session_id or not payload:
            raise InvalidArgument("Missing sessionId or audioData")
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(f"Session {session_id} not found")
            if not session.is_active:
                raise SessionNotActive(
                    f"Session {session_id} is not active (status: {session.status.value})"
                )
            if len(payload) > self.max_frame_bytes:
                raise FrameTooLarge(len(payload), self.max_frame_bytes)

            now = self._clock()
            frame = Frame(
                frame_id=_new_id("chunk", now),
                session_id=session_id,
                payload=bytes(payload),
                mime_type=mime_type or self.default_mime_type,
                captured_at=now,
            )
            session.recent_frames.append(frame)
            session.frame_count += 1
            session.last_activity_at = now

            depth = 0
            queue = self._queues.bound_to(session.consumer_id, session_id)
            if queue is not None:
                queue.append(frame)
                depth = len(queue.pending)

        logger.debug("Audio chunk sent: session=%s size=%d queue=%d", session_id, frame.size, depth)
        return PushResult(chunk_id=frame.frame_id, queue_size=depth)

    def _pull(self, consumer_id: str, channel_key: Optional[str]) -> PullResult:
        _require(driverId=consumer_id)
        joined = False
        with self._lock:
            now = self._clock()
            queue = self._queues.get(consumer_id)
            if queue is None:
                entry = self._index.active(channel_key) if channel_key else None
                session = self._sessions.get(entry.session_id) if entry is not None else None
                if entry is not None and session is None:
                    logger.warning(
                        "Broadcast index for tour %s points at missing session %s; reporting idle",
                        channel_key,
                        entry.session_id,
                    )
                if session is None or not session.is_active:
                    return PullResult(status=PollStatus.IDLE)
                # Late join: starts empty, no history.
                queue = self._queues.put(self._new_queue(consumer_id, session, now))
                joined = True

            bound = self._sessions.get(queue.session_id)
            if bound is not None:
                queue.status = bound.status
            queue.last_poll_at = now
            frames = queue.drain()
            status = PollStatus.from_session(queue.status)
            session_id = queue.session_id

        if joined:
            logger.info("Driver %s joined active broadcast for tour %s", consumer_id, channel_key)
        if frames:
            logger.debug("Driver %s received %d chunks", consumer_id, len(frames))
        return PullResult(
            chunks=[ChunkOut.from_frame(f) for f in frames],
            status=status,
            session_id=session_id,
        )

    def _stop(self, session_id: Optional[str], channel_key: Optional[str]) -> StopResult:
        if not session_id and not channel_key:
            raise InvalidArgument("Missing sessionId or tourId")
        with self._lock:
            session = self._sessions.get(session_id) if session_id else None
            if session is None and channel_key:
                entry = self._index.get(channel_key)
                if entry is not None:
                    session = self._sessions.get(entry.session_id)
            if session is None:
                raise SessionNotFound("Session not found")

            stopped_now = session.is_active
            if stopped_now:
                session.status = SessionStatus.STOPPING
                session.last_activity_at = self._clock()
                self._index.set_status(session.channel_key, session.session_id, SessionStatus.STOPPING)
                for queue in self._queues.bound_to_session(session.session_id):
                    queue.status = SessionStatus.STOPPING
                self._schedule_teardown_locked(session.session_id)

        if stopped_now:
            logger.info(
                "Broadcast stopped: session=%s tour=%s (teardown in %.0fs)",
                session.session_id,
                session.channel_key,
                self.stop_grace,
            )
        return StopResult(session_id=session.session_id)

    def _force_attach(self, consumer_id: str, session_id: str) -> AttachResult:
        _require(driverId=consumer_id, sessionId=session_id)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(f"Session {session_id} not found")
            if not session.is_active:
                raise SessionNotActive(f"Session {session_id} is not active")
            self._queues.put(self._new_queue(consumer_id, session, self._clock()))
        logger.info(
            "Force-connected driver %s to session %s (tour: %s)",
            consumer_id,
            session_id,
            session.channel_key,
        )
        return AttachResult(session_id=session_id, tour_id=session.channel_key)

    # ── Introspection ────────────────────────────────────────

    def _status(
        self,
        channel_key: Optional[str],
        session_id: Optional[str],
        consumer_id: Optional[str],
    ) -> StatusResult:
        with self._lock:
            entry = self._index.get(channel_key) if channel_key else None
            session = self._sessions.get(session_id) if session_id else None
            queue = self._queues.get(consumer_id) if consumer_id else None
            return StatusResult(
                broadcast=BroadcastSummary.from_entry(entry) if entry else None,
                session=SessionSummary.from_session(session) if session else None,
                driver_queue=QueueSummary.from_queue(queue) if queue else None,
                stats=self._counts_locked(),
            )

    def _active_broadcasts(self) -> ActiveBroadcastsResult:
        with self._lock:
            broadcasts = [
                self._describe_locked(e)
                for e in self._index.values()
                if e.status is SessionStatus.ACTIVE
            ]
        return ActiveBroadcastsResult(broadcasts=broadcasts)

    def _active_broadcast(self, channel_key: str) -> ActiveBroadcastResult:
        _require(tourId=channel_key)
        with self._lock:
            entry = self._index.active(channel_key)
            return ActiveBroadcastResult(broadcast=self._describe_locked(entry) if entry else None)

    def _debug_info(self) -> DebugInfoResult:
        with self._lock:
            return DebugInfoResult(
                sessions=[SessionSummary.from_session(s) for s in self._sessions.values()],
                driver_queues=[QueueSummary.from_queue(q) for q in self._queues.values()],
                tour_broadcasts=[BroadcastSummary.from_entry(e) for e in self._index.values()],
                stats=self._counts_locked(),
            )

    def _describe_locked(self, entry: BroadcastIndexEntry) -> ActiveBroadcast:
        session = self._sessions.get(entry.session_id)
        return ActiveBroadcast(
            **BroadcastSummary.from_entry(entry).model_dump(),
            last_activity=session.last_activity_at if session else entry.started_at,
            total_chunks=session.frame_count if session else 0,
            session=SessionSummary.from_session(session) if session else None,
        )

    def _counts_locked(self) -> RelayCounts:
        return RelayCounts(
            active_broadcasts=len(self._index),
            active_sessions=len(self._sessions),
            active_driver_queues=len(self._queues),
        )

    # ── Eviction (teardown timers and the reaper) ────────────

    def stale_candidates(self, now: Optional[float] = None) -> StaleCandidates:
        """Keys that look stale right now; each is re-checked when evicted."""
        with self._lock:
            now = self._clock() if now is None else now
            return StaleCandidates(
                sessions=self._sessions.stale_ids(now, self.session_timeout),
                queues=self._queues.stale_ids(now, self.session_timeout),
                channels=[e.channel_key for e in self._index.values() if self._entry_stale_locked(e, now)],
            )

    def evict_stale_session(self, session_id: str, now: Optional[float] = None) -> bool:
        with self._lock:
            now = self._clock() if now is None else now
            session = self._sessions.get(session_id)
            if session is None or (now - session.last_activity_at) <= self.session_timeout:
                return False
            self._evict_session_locked(session_id)
        logger.info("Evicted idle session %s (tour %s, status %s)", session_id, session.channel_key, session.status.value)
        return True

    def evict_stale_queue(self, consumer_id: str, now: Optional[float] = None) -> bool:
        with self._lock:
            now = self._clock() if now is None else now
            queue = self._queues.get(consumer_id)
            if queue is None or (now - queue.last_poll_at) <= self.session_timeout:
                return False
            self._queues.remove(consumer_id)
        logger.info("Evicted idle queue for driver %s (session %s)", consumer_id, queue.session_id)
        return True

    def evict_stale_channel(self, channel_key: str, now: Optional[float] = None) -> bool:
        with self._lock:
            now = self._clock() if now is None else now
            entry = self._index.get(channel_key)
            if entry is None or not self._entry_stale_locked(entry, now):
                return False
            self._index.remove(channel_key)
        logger.info("Evicted stale broadcast entry for tour %s (session %s)", channel_key, entry.session_id)
        return True

    def _entry_stale_locked(self, entry: BroadcastIndexEntry, now: float) -> bool:
        if entry.session_id not in self._sessions:
            return True
        return entry.status is not SessionStatus.ACTIVE and (now - entry.started_at) > self.session_timeout

    def _schedule_teardown_locked(self, session_id: str) -> None:
        if self._closed or session_id in self._teardowns:
            return
        self._teardowns[session_id] = self._scheduler.call_later(
            self.stop_grace, lambda: self._teardown(session_id)
        )

    def _teardown(self, session_id: str) -> None:
        with self._lock:
            self._teardowns.pop(session_id, None)
            session = self._evict_session_locked(session_id)
        if session is not None:
            logger.info("Cleaned up session %s (tour %s)", session_id, session.channel_key)

    def _evict_session_locked(self, session_id: str) -> Optional[Session]:
        """Remove a session with its queues and index entry in one step."""
        session = self._sessions.remove(session_id)
        if session is None:
            return None
        self._queues.remove_bound_to_session(session_id)
        self._index.remove_if_points_to(session.channel_key, session_id)
        handle = self._teardowns.pop(session_id, None)
        if handle is not None:
            handle.cancel()
        return session

    def shutdown(self) -> None:
        """Cancel pending teardowns; the stores are dropped with the process."""
        with self._lock:
            self._closed = True
            handles, self._teardowns = list(self._teardowns.values()), {}
        for h in handles:
            h.cancel()
        logger.info("Relay shut down (%d pending teardowns cancelled)", len(handles))

    # ── Helpers ──────────────────────────────────────────────

    def _new_queue(
        self,
        consumer_id: str,
        session: Session,
        now: float,
        frames: Optional[list[Frame]] = None,
    ) -> SubscriberQueue:
        return SubscriberQueue(
            consumer_id=consumer_id,
            session_id=session.session_id,
            channel_key=session.channel_key,
            created_at=now,
            last_poll_at=now,
            pending=frame_buffer(self.max_frames, frames),
            status=session.status,
        )

    def _guard(self, op: str, result_cls: type[R], fn: Callable[[], R]) -> R:
        try:
            return fn()
        except RelayError as exc:
            logger.warning("%s failed: %s", op, exc)
            return result_cls(success=False, error=str(exc), code=exc.code)
        except Exception as exc:
            logger.exception("%s failed unexpectedly", op)
            return result_cls(success=False, error=str(exc) or exc.__class__.__name__, code=Internal.code)
