"""Subscriber queues, keyed by consumer id (one inbox per consumer)."""
from __future__ import annotations

from typing import Dict, Iterable, Optional

from relay.services.models import SubscriberQueue


class SubscriberQueueStore:
    def __init__(self) -> None:
        self._queues: Dict[str, SubscriberQueue] = {}

    def get(self, consumer_id: str) -> Optional[SubscriberQueue]:
        return self._queues.get(consumer_id)

    def put(self, queue: SubscriberQueue) -> SubscriberQueue:
        """Insert or replace the consumer's queue."""
        self._queues[queue.consumer_id] = queue
        return queue

    def remove(self, consumer_id: str) -> Optional[SubscriberQueue]:
        return self._queues.pop(consumer_id, None)

    def remove_bound_to_session(self, session_id: str) -> list[SubscriberQueue]:
        """Drop every queue still bound to ``session_id``; rebound queues survive."""
        doomed = [cid for cid, q in self._queues.items() if q.session_id == session_id]
        return [self._queues.pop(cid) for cid in doomed]

    def bound_to_session(self, session_id: str) -> list[SubscriberQueue]:
        return [q for q in self._queues.values() if q.session_id == session_id]

    def bound_to(self, consumer_id: str, session_id: str) -> Optional[SubscriberQueue]:
        queue = self._queues.get(consumer_id)
        if queue is not None and queue.session_id == session_id:
            return queue
        return None

    def values(self) -> Iterable[SubscriberQueue]:
        return list(self._queues.values())

    def stale_ids(self, now: float, timeout: float) -> list[str]:
        return [
            cid
            for cid, q in self._queues.items()
            if (now - q.last_poll_at) > timeout
        ]

    def __len__(self) -> int:
        return len(self._queues)
