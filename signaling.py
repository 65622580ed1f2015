import logging
from typing import Any, Dict, List, Optional

from calls import CallConflictError, CallRegistry
from connections import ConnectionRegistry, LiveConnection, deliver
from schemas import Call, CallType

logger = logging.getLogger(__name__)

CALL_EVENTS = {
    "accepted": "call_accepted",
    "declined": "call_declined",
    "ended": "call_ended",
    "missed": "call_missed",
}


class CallSignalingRelay:
    """Drives the call registry and pushes call events to the two participants.

    WebRTC offer/answer/ICE frames are forwarded untouched to the target
    user's connection. Nothing is queued: a peer that is not connected simply
    misses the frame.
    """

    def __init__(self, connections: ConnectionRegistry, calls: CallRegistry):
        self.connections = connections
        self.calls = calls

    async def initiate(
        self,
        caller: LiveConnection,
        call_type: CallType,
        caller_username: str,
        receiver_id: str,
        receiver_username: str,
    ) -> Optional[Call]:
        if caller.user_id is None:
            return None
        try:
            call = self.calls.create(
                caller_id=caller.user_id,
                caller_username=caller_username,
                receiver_id=receiver_id,
                receiver_username=receiver_username,
                call_type=call_type,
            )
        except CallConflictError as e:
            logger.info("Rejected call from %s to %s: %s", caller.user_id, receiver_id, e)
            return None

        receiver = self.connections.find_by_user_id(receiver_id)
        if receiver is None:
            logger.debug("Receiver %s offline, call %s left pending", receiver_id, call.id)
            return call

        await deliver(receiver, {
            "type": "incoming_call",
            "callId": call.id,
            "callerId": call.caller_id,
            "callerUsername": call.caller_username,
            "callType": call.call_type.value,
        })
        return call

    async def accept(self, call_id: str) -> Optional[Call]:
        return await self._notify(self.calls.accept(call_id))

    async def decline(self, call_id: str) -> Optional[Call]:
        return await self._notify(self.calls.decline(call_id))

    async def end(self, call_id: str) -> Optional[Call]:
        return await self._notify(self.calls.end(call_id))

    async def notify_missed(self, missed: List[Call]) -> None:
        for call in missed:
            await self._notify(call)

    async def _notify(self, call: Optional[Call]) -> Optional[Call]:
        if call is None:
            return None
        payload = {
            "type": CALL_EVENTS[call.status.value],
            "callId": call.id,
            "status": call.status.value,
        }
        for user_id in (call.caller_id, call.receiver_id):
            conn = self.connections.find_by_user_id(user_id)
            if conn is not None:
                await deliver(conn, payload)
        return call

    async def forward(self, kind: str, target_user_id: str, data: Dict[str, Any]) -> bool:
        target = self.connections.find_by_user_id(target_user_id)
        if target is None:
            logger.debug("Dropping %s for offline user %s", kind, target_user_id)
            return False
        return await deliver(target, {**data, "type": kind})
