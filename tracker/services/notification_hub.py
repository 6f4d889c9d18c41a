"""In-memory publish/subscribe channel for real-time notification pushes.

Each subscriber holds a bounded asyncio.Queue. Publishing never waits: if a
subscriber's queue is full the event is dropped for that subscriber only.
The notification row is the durable record; the push is best-effort.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

logger = logging.getLogger(__name__)


class NotificationHub:
    """Per-user fan-out of notification payloads."""

    def __init__(self, queue_maxsize: int = 100) -> None:
        # user_id -> set of asyncio.Queue
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize
        self.dropped = 0

    def subscribe(self, user_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[user_id].add(queue)
        return queue

    def unsubscribe(self, user_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(user_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[user_id]

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))

    def publish(self, user_id: str, payload: dict[str, Any]) -> int:
        """Push ``payload`` to every live subscriber of ``user_id``.

        Returns the number of subscribers that received it.
        """
        delivered = 0
        for queue in list(self._subscribers.get(user_id, ())):
            try:
                queue.put_nowait(payload)
                delivered += 1
            except asyncio.QueueFull:
                self.dropped += 1
                logger.warning("Dropped real-time push for user=%s (queue full)", user_id)
        return delivered
