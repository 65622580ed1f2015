"""
Registry of live WebSocket connections.

Entries are keyed by connection handle, not by user id: one user may hold
several channels at once (two tabs, or a reconnect that beats the reaping of
the old socket).
"""

import itertools
import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from schemas import Position
from utils import new_id

logger = logging.getLogger(__name__)


class WebSocketChannel:
    """Send endpoint backed by a FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, payload: Dict[str, Any]) -> None:
        await self.websocket.send_json(payload)


@dataclass(frozen=True)
class LiveConnection:
    handle: str
    channel: Any
    user_id: Optional[str] = None
    position: Optional[Position] = None
    radius: float = 2.0
    # Bumped on every identity change; the highest one wins find_by_user_id
    seq: int = 0

    @property
    def is_open(self) -> bool:
        return self.channel.is_open


async def deliver(conn: LiveConnection, payload: Dict[str, Any]) -> bool:
    """Write one payload to one connection; failures are logged, never raised."""
    if not conn.is_open:
        return False
    try:
        await conn.channel.send_json(payload)
        return True
    except Exception as e:
        logger.warning("Delivery of %s to %s failed: %s", payload.get("type"), conn.handle, e)
        return False


class ConnectionRegistry:
    def __init__(self, default_radius: float = 2.0):
        self.default_radius = default_radius
        self._connections: Dict[str, LiveConnection] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def register(self, channel) -> str:
        handle = new_id()
        with self._lock:
            self._connections[handle] = LiveConnection(
                handle=handle, channel=channel, radius=self.default_radius, seq=next(self._seq)
            )
        return handle

    def get(self, handle: str) -> Optional[LiveConnection]:
        with self._lock:
            return self._connections.get(handle)

    def _update(self, handle: str, **changes) -> Optional[LiveConnection]:
        with self._lock:
            conn = self._connections.get(handle)
            if conn is None:
                return None
            conn = replace(conn, **changes)
            self._connections[handle] = conn
            return conn

    def set_identity(
        self,
        handle: str,
        user_id: str,
        position: Optional[Position],
        radius: Optional[float] = None,
    ) -> Optional[LiveConnection]:
        return self._update(
            handle,
            user_id=user_id,
            position=position,
            radius=self.default_radius if radius is None else radius,
            seq=next(self._seq),
        )

    def update_position(self, handle: str, position: Position) -> Optional[LiveConnection]:
        return self._update(handle, position=position)

    def update_radius(self, handle: str, radius: float) -> Optional[LiveConnection]:
        return self._update(handle, radius=radius)

    def unregister(self, handle: str) -> Optional[LiveConnection]:
        with self._lock:
            return self._connections.pop(handle, None)

    def find_by_user_id(self, user_id: str) -> Optional[LiveConnection]:
        """Most recently identified open connection for ``user_id``."""
        matches = self.connections_for_user(user_id)
        if not matches:
            return None
        return max(matches, key=lambda c: c.seq)

    def connections_for_user(self, user_id: str) -> List[LiveConnection]:
        return [c for c in self.snapshot() if c.user_id == user_id]

    def snapshot(self) -> List[LiveConnection]:
        """Open connections at this instant; closed entries are skipped."""
        with self._lock:
            conns = list(self._connections.values())
        return [c for c in conns if c.is_open]

    def for_each_open(self, fn: Callable[[LiveConnection], None]) -> None:
        for conn in self.snapshot():
            fn(conn)
