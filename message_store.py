"""
Time-bounded message store.

Messages live for a fixed retention window and are answered by proximity:
a query sees a message when the two origins are within the larger of the two
radii. Expired entries are hidden at query time and reclaimed by
``evict_expired``, which runs on a timer.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List

from geo import within_reach
from schemas import Message, Position
from utils import new_id, now_utc

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(hours=24)


class MessageStore:
    def __init__(
        self,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.retention = retention
        self.clock = clock
        self._messages: Dict[str, Message] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def create(
        self,
        author_id: str,
        username: str,
        content: str,
        origin: Position,
        radius: float,
    ) -> Message:
        created_at = self.clock()
        message = Message(
            id=new_id(),
            user_id=author_id,
            username=username,
            content=content,
            latitude=origin.latitude,
            longitude=origin.longitude,
            radius=radius,
            created_at=created_at,
            expires_at=created_at + self.retention,
        )
        self.add(message)
        return message

    def add(self, message: Message) -> None:
        """Store a fully built message (used for seeding and imports)."""
        with self._lock:
            self._messages[message.id] = message

    def query(self, origin: Position, radius: float, limit: int = 50) -> List[Message]:
        """Non-expired messages in reach of ``origin``, newest first."""
        now = self.clock()
        with self._lock:
            snapshot = list(self._messages.values())

        visible = [
            m for m in snapshot
            if now < m.expires_at and within_reach(origin, radius, m.position, m.radius)
        ]
        visible.sort(key=lambda m: m.created_at, reverse=True)
        return visible[:max(limit, 0)]

    def evict_expired(self) -> int:
        """Drop every message whose expiry is at or before the scan start.

        The scan runs over a snapshot without holding the lock, so writers are
        never blocked for the length of a full pass.
        """
        cutoff = self.clock()
        with self._lock:
            snapshot = list(self._messages.items())

        expired = [mid for mid, m in snapshot if m.expires_at <= cutoff]
        if not expired:
            return 0

        removed = 0
        with self._lock:
            for mid in expired:
                if self._messages.pop(mid, None) is not None:
                    removed += 1

        logger.info("Evicted %d expired messages", removed)
        return removed
