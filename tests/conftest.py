from datetime import datetime, timedelta, timezone

import pytest

from config import Settings
from hub import ProximityHub


class FakeChannel:
    """In-memory stand-in for a WebSocket send endpoint."""

    def __init__(self):
        self.sent = []
        self.is_open = True

    async def send_json(self, payload):
        if not self.is_open:
            raise RuntimeError("channel closed")
        self.sent.append(payload)

    def of_type(self, kind):
        return [p for p in self.sent if p.get("type") == kind]


class FailingChannel(FakeChannel):
    async def send_json(self, payload):
        raise ConnectionResetError("peer went away")


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def hub(settings, clock):
    return ProximityHub(settings, clock=clock)
