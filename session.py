"""
Per-connection dispatcher.

Each inbound frame is decoded once into one of the event models in
``schemas`` and routed by its class. A bad frame is logged and dropped; it
never closes the connection.
"""

import logging
from typing import Optional, Union

from pydantic import ValidationError

from connections import LiveConnection, deliver
from hub import ProximityHub
from schemas import (
    AcceptCall,
    DeclineCall,
    EndCall,
    InitiateCall,
    SendMessage,
    Typing,
    UpdateLocation,
    UpdateRadius,
    UserJoin,
    WebRTCSignal,
    parse_event,
)

logger = logging.getLogger(__name__)


class Session:
    def __init__(self, hub: ProximityHub, channel):
        self.hub = hub
        self.handle = hub.connections.register(channel)
        self.closed = False
        self._handlers = {
            UserJoin: self.on_user_join,
            SendMessage: self.on_send_message,
            Typing: self.on_typing,
            UpdateLocation: self.on_update_location,
            UpdateRadius: self.on_update_radius,
            InitiateCall: self.on_initiate_call,
            AcceptCall: self.on_accept_call,
            DeclineCall: self.on_decline_call,
            EndCall: self.on_end_call,
            WebRTCSignal: self.on_webrtc_signal,
        }

    @property
    def connection(self) -> Optional[LiveConnection]:
        return self.hub.connections.get(self.handle)

    async def handle_frame(self, raw: Union[str, bytes]) -> None:
        try:
            event = parse_event(raw)
        except ValidationError as e:
            logger.warning("Malformed frame on %s: %s", self.handle, e.errors(include_url=False)[:3])
            return

        try:
            await self._handlers[type(event)](event)
        except Exception:
            logger.exception("Error handling %s on %s", event.type, self.handle)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        conn = self.hub.connections.unregister(self.handle)
        if conn is None or conn.user_id is None:
            return
        self._release_user(conn.user_id)
        logger.info("User %s left (%s)", conn.user_id, self.handle)

    def _release_user(self, user_id: str) -> None:
        # Inactive once no open connection carries the user any more
        if not self.hub.connections.connections_for_user(user_id):
            self.hub.users.mark_inactive(user_id)

    # -------------------- Presence --------------------

    async def on_user_join(self, event: UserJoin) -> None:
        radius = self.hub.settings.default_radius if event.radius is None else event.radius
        previous = self.connection
        conn = self.hub.connections.set_identity(self.handle, event.user_id, event.location, radius)
        if conn is None:
            return
        if previous is not None and previous.user_id not in (None, event.user_id):
            self._release_user(previous.user_id)
        self.hub.users.join(event.user_id, event.location, radius)
        logger.info("User %s joined on %s", event.user_id, self.handle)

        if conn.position is not None:
            history = self.hub.messages.query(conn.position, conn.radius, self.hub.settings.history_limit)
            await deliver(conn, {
                "type": "message_history",
                "messages": [m.to_wire() for m in history],
            })

    async def on_update_location(self, event: UpdateLocation) -> None:
        conn = self.hub.connections.update_position(self.handle, event.location)
        if conn is not None and conn.user_id is not None:
            self.hub.users.update_location(conn.user_id, event.location)

    async def on_update_radius(self, event: UpdateRadius) -> None:
        conn = self.hub.connections.update_radius(self.handle, event.radius)
        if conn is not None and conn.user_id is not None:
            self.hub.users.update_radius(conn.user_id, event.radius)

    # -------------------- Chat --------------------

    async def on_send_message(self, event: SendMessage) -> None:
        conn = self.connection
        if conn is None or conn.user_id is None or conn.position is None:
            logger.debug("Dropping message from %s before join", self.handle)
            return
        self.hub.users.rename(conn.user_id, event.username)
        await self.hub.broadcaster.publish_message(conn, event.username, event.content)

    async def on_typing(self, event: Typing) -> None:
        conn = self.connection
        if conn is None:
            return
        await self.hub.broadcaster.publish_typing(conn, event.type, event.username)

    # -------------------- Calls --------------------

    async def on_initiate_call(self, event: InitiateCall) -> None:
        conn = self.connection
        if conn is None or conn.user_id is None:
            return
        await self.hub.signaling.initiate(
            conn,
            call_type=event.call_type,
            caller_username=event.caller_username,
            receiver_id=event.receiver_id,
            receiver_username=event.receiver_username,
        )

    async def on_accept_call(self, event: AcceptCall) -> None:
        await self.hub.signaling.accept(event.call_id)

    async def on_decline_call(self, event: DeclineCall) -> None:
        await self.hub.signaling.decline(event.call_id)

    async def on_end_call(self, event: EndCall) -> None:
        await self.hub.signaling.end(event.call_id)

    async def on_webrtc_signal(self, event: WebRTCSignal) -> None:
        await self.hub.signaling.forward(event.type, event.target_user_id, event.data)
