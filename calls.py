"""
Call registry and its state machine.

    pending -> accepted -> ended
    pending -> declined
    pending -> ended
    pending -> missed      (only when a pending timeout is configured)

declined, ended and missed are terminal. A transition that is not in the
table leaves the call untouched.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from schemas import ACTIVE_CALL_STATUSES, Call, CallStatus, CallType
from utils import new_id, now_utc

logger = logging.getLogger(__name__)

TRANSITIONS = {
    CallStatus.PENDING: {CallStatus.ACCEPTED, CallStatus.DECLINED, CallStatus.ENDED, CallStatus.MISSED},
    CallStatus.ACCEPTED: {CallStatus.ENDED},
}


class CallConflictError(Exception):
    """Raised when a participant already has an active call and uniqueness is enforced."""

    def __init__(self, user_id: str, call_id: str):
        super().__init__(f"user {user_id} already in call {call_id}")
        self.user_id = user_id
        self.call_id = call_id


def can_transition(current: CallStatus, target: CallStatus) -> bool:
    return target in TRANSITIONS.get(current, set())


class CallRegistry:
    def __init__(self, enforce_single_active_call: bool = False, clock: Callable[[], datetime] = now_utc):
        self.enforce_single_active_call = enforce_single_active_call
        self.clock = clock
        self._calls: Dict[str, Call] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._calls)

    def create(
        self,
        caller_id: str,
        caller_username: str,
        receiver_id: str,
        receiver_username: str,
        call_type: CallType,
    ) -> Call:
        call = Call(
            id=new_id(),
            caller_id=caller_id,
            caller_username=caller_username,
            receiver_id=receiver_id,
            receiver_username=receiver_username,
            call_type=call_type,
            created_at=self.clock(),
        )
        with self._lock:
            if self.enforce_single_active_call:
                for user_id in (caller_id, receiver_id):
                    active = self._active_for(user_id)
                    if active is not None:
                        raise CallConflictError(user_id, active.id)
            self._calls[call.id] = call
        return call.model_copy()

    def get(self, call_id: str) -> Optional[Call]:
        with self._lock:
            call = self._calls.get(call_id)
            return call.model_copy() if call else None

    def accept(self, call_id: str) -> Optional[Call]:
        return self._transition(call_id, CallStatus.ACCEPTED)

    def decline(self, call_id: str) -> Optional[Call]:
        return self._transition(call_id, CallStatus.DECLINED)

    def end(self, call_id: str) -> Optional[Call]:
        return self._transition(call_id, CallStatus.ENDED)

    def _transition(self, call_id: str, target: CallStatus) -> Optional[Call]:
        """Apply one transition; returns the updated call, or None for a no-op."""
        now = self.clock()
        with self._lock:
            call = self._calls.get(call_id)
            if call is None:
                return None
            if not can_transition(call.status, target):
                logger.debug("Ignoring %s -> %s for call %s", call.status.value, target.value, call_id)
                return None
            call.status = target
            if target == CallStatus.ACCEPTED:
                call.started_at = now
            elif target in (CallStatus.ENDED, CallStatus.MISSED):
                call.ended_at = now
            return call.model_copy()

    def expire_pending(self, timeout: timedelta) -> List[Call]:
        """Turn pending calls older than ``timeout`` into missed calls."""
        cutoff = self.clock() - timeout
        with self._lock:
            overdue = [
                c.id for c in self._calls.values()
                if c.status == CallStatus.PENDING and c.created_at <= cutoff
            ]
        missed = []
        for call_id in overdue:
            call = self._transition(call_id, CallStatus.MISSED)
            if call is not None:
                missed.append(call)
        return missed

    def active_call_for(self, user_id: str) -> Optional[Call]:
        with self._lock:
            call = self._active_for(user_id)
            return call.model_copy() if call else None

    def _active_for(self, user_id: str) -> Optional[Call]:
        for call in self._calls.values():
            if call.involves(user_id) and call.status in ACTIVE_CALL_STATUSES:
                return call
        return None

    def calls_for_user(self, user_id: str) -> List[Call]:
        with self._lock:
            calls = [c.model_copy() for c in self._calls.values() if c.involves(user_id)]
        calls.sort(key=lambda c: c.created_at, reverse=True)
        return calls
