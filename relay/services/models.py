"""
In-memory records held by the relay stores.

Frames are frozen and shared by reference between a session's ring buffer and
the bound subscriber queue; evicting one copy never touches the other.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Optional


class SessionStatus(str, Enum):
    ACTIVE = "active"
    STOPPING = "stopping"
    STOPPED = "stopped"


class PollStatus(str, Enum):
    """Status reported to a polling consumer; IDLE means no broadcast to follow."""

    ACTIVE = "active"
    STOPPING = "stopping"
    STOPPED = "stopped"
    IDLE = "idle"

    @classmethod
    def from_session(cls, status: SessionStatus) -> "PollStatus":
        return cls(status.value)


@dataclass(frozen=True)
class Frame:
    frame_id: str
    session_id: str
    payload: bytes
    mime_type: str
    captured_at: float

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass
class Session:
    """One producer-to-consumer broadcast. The relay is its only writer."""

    session_id: str
    channel_key: str
    producer_id: str
    consumer_id: str
    created_at: float
    last_activity_at: float
    recent_frames: Deque[Frame]
    status: SessionStatus = SessionStatus.ACTIVE
    frame_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE


@dataclass
class SubscriberQueue:
    """Per-consumer inbox; lossy, oldest frames fall off when full."""

    consumer_id: str
    session_id: str
    channel_key: str
    created_at: float
    last_poll_at: float
    pending: Deque[Frame]
    status: SessionStatus = SessionStatus.ACTIVE
    total_delivered: int = 0
    dropped: int = 0

    def append(self, frame: Frame) -> None:
        if self.pending.maxlen is not None and len(self.pending) >= self.pending.maxlen:
            self.dropped += 1
        self.pending.append(frame)

    def drain(self) -> list[Frame]:
        frames = list(self.pending)
        self.pending.clear()
        self.total_delivered += len(frames)
        return frames


@dataclass
class BroadcastIndexEntry:
    """Discovery pointer for a channel; the Session it names stays authoritative."""

    channel_key: str
    session_id: str
    producer_id: str
    consumer_id: str
    started_at: float
    status: SessionStatus = SessionStatus.ACTIVE


def frame_buffer(capacity: int, frames: Optional[list[Frame]] = None) -> Deque[Frame]:
    return deque(frames or (), maxlen=capacity)
