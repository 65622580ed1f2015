import logging
from typing import Any, Dict, Optional

from connections import ConnectionRegistry, LiveConnection, deliver
from geo import within_reach
from message_store import MessageStore
from schemas import Message, Position

logger = logging.getLogger(__name__)


class ProximityBroadcaster:
    """Fans events out to every open connection in reach of the origin.

    A recipient is in reach when the distance between the two positions is at
    most the larger of the two radii. Delivery is at-most-once and best effort.
    """

    def __init__(self, connections: ConnectionRegistry, messages: MessageStore):
        self.connections = connections
        self.messages = messages

    async def publish_message(self, sender: LiveConnection, username: str, content: str) -> Optional[Message]:
        if sender.user_id is None or sender.position is None:
            return None

        message = self.messages.create(
            author_id=sender.user_id,
            username=username,
            content=content,
            origin=sender.position,
            radius=sender.radius,
        )
        delivered = await self.fanout(
            {"type": "new_message", **message.to_wire()},
            sender.position,
            sender.radius,
            exclude_handle=sender.handle,
        )
        logger.debug("Message %s delivered to %d connections", message.id, delivered)
        return message

    async def publish_typing(self, sender: LiveConnection, kind: str, username: str) -> int:
        if sender.user_id is None or sender.position is None:
            return 0
        payload = {"type": kind, "userId": sender.user_id, "username": username}
        return await self.fanout(
            payload,
            sender.position,
            sender.radius,
            exclude_user_id=sender.user_id,
        )

    async def fanout(
        self,
        payload: Dict[str, Any],
        origin: Position,
        radius: float,
        exclude_handle: Optional[str] = None,
        exclude_user_id: Optional[str] = None,
    ) -> int:
        delivered = 0
        for conn in self.connections.snapshot():
            if conn.handle == exclude_handle:
                continue
            if exclude_user_id is not None and conn.user_id == exclude_user_id:
                continue
            if conn.position is None:
                continue
            if not within_reach(origin, radius, conn.position, conn.radius):
                continue
            if await deliver(conn, payload):
                delivered += 1
        return delivered
