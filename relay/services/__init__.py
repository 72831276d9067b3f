from relay.services.errors import (
    FrameTooLarge,
    Internal,
    InvalidArgument,
    RelayError,
    SessionNotActive,
    SessionNotFound,
)
from relay.services.live_broadcast import LiveBroadcastRelay
from relay.services.models import PollStatus, SessionStatus
from relay.services.reaper import Reaper
from relay.services.timers import AsyncioTimerScheduler, wall_clock

__all__ = [
    "AsyncioTimerScheduler",
    "FrameTooLarge",
    "Internal",
    "InvalidArgument",
    "LiveBroadcastRelay",
    "PollStatus",
    "Reaper",
    "RelayError",
    "SessionNotActive",
    "SessionNotFound",
    "SessionStatus",
    "wall_clock",
]
