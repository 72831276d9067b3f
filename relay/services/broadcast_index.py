"""
Channel discovery index: tour id -> the session currently broadcasting on it.

Entries are read-optimized pointers with denormalized identities. The Session
they reference stays the source of truth; the relay keeps both in step.
"""
from __future__ import annotations

from typing import Dict, Iterable, Optional

from relay.services.models import BroadcastIndexEntry, SessionStatus


class BroadcastIndex:
    def __init__(self) -> None:
        self._entries: Dict[str, BroadcastIndexEntry] = {}

    def get(self, channel_key: str) -> Optional[BroadcastIndexEntry]:
        return self._entries.get(channel_key)

    def active(self, channel_key: str) -> Optional[BroadcastIndexEntry]:
        entry = self._entries.get(channel_key)
        if entry is not None and entry.status is SessionStatus.ACTIVE:
            return entry
        return None

    def put(self, entry: BroadcastIndexEntry) -> BroadcastIndexEntry:
        self._entries[entry.channel_key] = entry
        return entry

    def set_status(self, channel_key: str, session_id: str, status: SessionStatus) -> None:
        entry = self._entries.get(channel_key)
        if entry is not None and entry.session_id == session_id:
            entry.status = status

    def remove(self, channel_key: str) -> Optional[BroadcastIndexEntry]:
        return self._entries.pop(channel_key, None)

    def remove_if_points_to(self, channel_key: str, session_id: str) -> Optional[BroadcastIndexEntry]:
        """Remove the entry only while it still names ``session_id``."""
        entry = self._entries.get(channel_key)
        if entry is None or entry.session_id != session_id:
            return None
        return self._entries.pop(channel_key)

    def values(self) -> Iterable[BroadcastIndexEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
