"""
Typed results returned by every public relay operation.

Field names are snake_case in Python and camelCase on the wire (``tourId``,
``queueSize``...), matching what existing callers already parse.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from relay.services.models import (
    BroadcastIndexEntry,
    Frame,
    PollStatus,
    Session,
    SubscriberQueue,
)


class RelayModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RelayResult(RelayModel):
    success: bool = True
    error: Optional[str] = None
    code: Optional[str] = None


# ── Summaries ────────────────────────────────────────────────


class ChunkOut(RelayModel):
    """One delivered frame; audio travels as a list of byte values."""

    id: str
    session_id: str
    audio_data: List[int]
    mime_type: str
    timestamp: float
    size: int

    @classmethod
    def from_frame(cls, frame: Frame) -> "ChunkOut":
        return cls(
            id=frame.frame_id,
            session_id=frame.session_id,
            audio_data=list(frame.payload),
            mime_type=frame.mime_type,
            timestamp=frame.captured_at,
            size=frame.size,
        )


class SessionSummary(RelayModel):
    id: str
    tour_id: str
    driver_id: str
    admin_id: str
    status: str
    start_time: float
    last_activity: float
    total_chunks: int
    buffered_chunks: int

    @classmethod
    def from_session(cls, s: Session) -> "SessionSummary":
        return cls(
            id=s.session_id,
            tour_id=s.channel_key,
            driver_id=s.consumer_id,
            admin_id=s.producer_id,
            status=s.status.value,
            start_time=s.created_at,
            last_activity=s.last_activity_at,
            total_chunks=s.frame_count,
            buffered_chunks=len(s.recent_frames),
        )


class QueueSummary(RelayModel):
    driver_id: str
    session_id: str
    tour_id: str
    status: str
    queue_size: int
    last_poll: float
    total_received: int
    dropped: int

    @classmethod
    def from_queue(cls, q: SubscriberQueue) -> "QueueSummary":
        return cls(
            driver_id=q.consumer_id,
            session_id=q.session_id,
            tour_id=q.channel_key,
            status=q.status.value,
            queue_size=len(q.pending),
            last_poll=q.last_poll_at,
            total_received=q.total_delivered,
            dropped=q.dropped,
        )


class BroadcastSummary(RelayModel):
    tour_id: str
    session_id: str
    driver_id: str
    admin_id: str
    status: str
    start_time: float

    @classmethod
    def from_entry(cls, e: BroadcastIndexEntry) -> "BroadcastSummary":
        return cls(
            tour_id=e.channel_key,
            session_id=e.session_id,
            driver_id=e.consumer_id,
            admin_id=e.producer_id,
            status=e.status.value,
            start_time=e.started_at,
        )


class ActiveBroadcast(BroadcastSummary):
    last_activity: float
    total_chunks: int
    session: Optional[SessionSummary] = None


class RelayCounts(RelayModel):
    active_broadcasts: int = 0
    active_sessions: int = 0
    active_driver_queues: int = 0


# ── Operation results ────────────────────────────────────────


class StartResult(RelayResult):
    session_id: Optional[str] = None


class PushResult(RelayResult):
    chunk_id: Optional[str] = None
    queue_size: int = 0


class PullResult(RelayResult):
    chunks: List[ChunkOut] = []
    status: PollStatus = PollStatus.IDLE
    session_id: Optional[str] = None


class StopResult(RelayResult):
    session_id: Optional[str] = None


class AttachResult(RelayResult):
    session_id: Optional[str] = None
    tour_id: Optional[str] = None


class StatusResult(RelayResult):
    broadcast: Optional[BroadcastSummary] = None
    session: Optional[SessionSummary] = None
    driver_queue: Optional[QueueSummary] = None
    stats: RelayCounts = RelayCounts()


class ActiveBroadcastsResult(RelayResult):
    broadcasts: List[ActiveBroadcast] = []


class ActiveBroadcastResult(RelayResult):
    broadcast: Optional[ActiveBroadcast] = None


class DebugInfoResult(RelayResult):
    sessions: List[SessionSummary] = []
    driver_queues: List[QueueSummary] = []
    tour_broadcasts: List[BroadcastSummary] = []
    stats: RelayCounts = RelayCounts()
