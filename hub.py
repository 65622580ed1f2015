import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Optional

from broadcast import ProximityBroadcaster
from calls import CallRegistry
from config import Settings
from connections import ConnectionRegistry
from message_store import MessageStore
from reports import ReportStore
from signaling import CallSignalingRelay
from users import UserStore
from utils import now_utc

logger = logging.getLogger(__name__)


class ProximityHub:
    """Process-wide stores and engines shared by every session."""

    def __init__(self, settings: Settings, clock=now_utc):
        self.settings = settings
        self.users = UserStore(default_radius=settings.default_radius, clock=clock)
        self.messages = MessageStore(retention=timedelta(hours=settings.message_ttl_hours), clock=clock)
        self.calls = CallRegistry(
            enforce_single_active_call=settings.enforce_single_active_call, clock=clock
        )
        self.reports = ReportStore(clock=clock)
        self.connections = ConnectionRegistry(default_radius=settings.default_radius)
        self.broadcaster = ProximityBroadcaster(self.connections, self.messages)
        self.signaling = CallSignalingRelay(self.connections, self.calls)

    async def expire_pending_calls(self) -> int:
        timeout = self.settings.pending_call_timeout_seconds
        if timeout is None:
            return 0
        missed = self.calls.expire_pending(timedelta(seconds=timeout))
        await self.signaling.notify_missed(missed)
        return len(missed)

    async def evict_messages(self) -> int:
        return self.messages.evict_expired()

    def start_housekeeping(self) -> list:
        tasks = [
            asyncio.create_task(
                run_periodic("message-eviction", self.settings.eviction_interval_seconds, self.evict_messages)
            )
        ]
        if self.settings.pending_call_timeout_seconds is not None:
            tasks.append(asyncio.create_task(
                run_periodic("call-expiry", self.settings.call_sweep_interval_seconds, self.expire_pending_calls)
            ))
        return tasks


async def run_periodic(name: str, interval: float, job: Callable[[], Awaitable[Optional[int]]]) -> None:
    """Run ``job`` every ``interval`` seconds until cancelled; errors are logged."""
    logger.info("Starting %s every %ss", name, interval)
    while True:
        await asyncio.sleep(interval)
        try:
            await job()
        except Exception:
            logger.exception("%s failed", name)
