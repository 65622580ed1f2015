from datetime import timedelta

import pytest
from conftest import FakeChannel

from calls import CallConflictError, CallRegistry
from config import Settings
from hub import ProximityHub
from schemas import CallStatus, CallType, Position

HERE = Position(latitude=40.0, longitude=-73.0)


def connect(hub, user_id):
    channel = FakeChannel()
    handle = hub.connections.register(channel)
    hub.connections.set_identity(handle, user_id, HERE, 2)
    return hub.connections.get(handle), channel


async def start_call(hub, caller, call_type=CallType.VIDEO):
    return await hub.signaling.initiate(
        caller, call_type=call_type, caller_username="Caller",
        receiver_id="receiver", receiver_username="Receiver",
    )


async def test_call_to_offline_receiver_stays_pending(hub):
    caller, caller_ch = connect(hub, "caller")

    call = await start_call(hub, caller)

    assert call.status == CallStatus.PENDING
    assert hub.calls.get(call.id).status == CallStatus.PENDING
    assert caller_ch.sent == []


async def test_incoming_call_goes_to_receiver_only(hub):
    caller, caller_ch = connect(hub, "caller")
    _, receiver_ch = connect(hub, "receiver")

    call = await start_call(hub, caller, CallType.AUDIO)

    assert receiver_ch.sent == [{
        "type": "incoming_call",
        "callId": call.id,
        "callerId": "caller",
        "callerUsername": "Caller",
        "callType": "audio",
    }]
    assert caller_ch.sent == []


async def test_accept_then_end_notifies_both(hub, clock):
    caller, caller_ch = connect(hub, "caller")
    _, receiver_ch = connect(hub, "receiver")
    call = await start_call(hub, caller)

    clock.advance(seconds=5)
    accepted = await hub.signaling.accept(call.id)
    assert accepted.status == CallStatus.ACCEPTED
    assert accepted.started_at == clock.now

    clock.advance(minutes=3)
    ended = await hub.signaling.end(call.id)
    assert ended.ended_at == clock.now

    expected = [
        {"type": "call_accepted", "callId": call.id, "status": "accepted"},
        {"type": "call_ended", "callId": call.id, "status": "ended"},
    ]
    assert caller_ch.sent == expected
    assert receiver_ch.of_type("call_accepted") + receiver_ch.of_type("call_ended") == expected


async def test_decline_is_terminal(hub):
    caller, caller_ch = connect(hub, "caller")
    call = await start_call(hub, caller)

    declined = await hub.signaling.decline(call.id)
    assert declined.status == CallStatus.DECLINED

    assert await hub.signaling.accept(call.id) is None
    assert await hub.signaling.end(call.id) is None
    assert hub.calls.get(call.id).status == CallStatus.DECLINED
    assert [p["type"] for p in caller_ch.sent] == ["call_declined"]


async def test_accept_after_end_does_not_resurrect(hub):
    caller, caller_ch = connect(hub, "caller")
    call = await start_call(hub, caller)
    await hub.signaling.end(call.id)

    assert await hub.signaling.accept(call.id) is None
    assert await hub.signaling.decline(call.id) is None

    stored = hub.calls.get(call.id)
    assert stored.status == CallStatus.ENDED
    assert stored.started_at is None
    assert [p["type"] for p in caller_ch.sent] == ["call_ended"]


async def test_unknown_call_is_ignored(hub):
    assert await hub.signaling.accept("missing") is None
    assert await hub.signaling.end("missing") is None


async def test_signaling_frames_forwarded_in_order(hub):
    _, a_ch = connect(hub, "a")
    _, b_ch = connect(hub, "b")

    await hub.signaling.forward("webrtc_offer", "b", {"sdp": "v=0 offer"})
    await hub.signaling.forward("webrtc_ice_candidate", "b", {"candidate": "c1"})
    await hub.signaling.forward("webrtc_ice_candidate", "b", {"candidate": "c2"})

    assert b_ch.sent == [
        {"type": "webrtc_offer", "sdp": "v=0 offer"},
        {"type": "webrtc_ice_candidate", "candidate": "c1"},
        {"type": "webrtc_ice_candidate", "candidate": "c2"},
    ]
    assert a_ch.sent == []
    assert len(hub.calls) == 0


async def test_signaling_to_offline_peer_is_dropped(hub):
    assert await hub.signaling.forward("webrtc_answer", "ghost", {"sdp": "x"}) is False


async def test_concurrent_calls_allowed_by_default(hub):
    caller, _ = connect(hub, "caller")
    first = await start_call(hub, caller)
    second = await start_call(hub, caller)
    assert first.id != second.id
    assert len(hub.calls.calls_for_user("receiver")) == 2


def test_single_active_call_can_be_enforced(clock):
    calls = CallRegistry(enforce_single_active_call=True, clock=clock)
    first = calls.create("a", "A", "b", "B", CallType.AUDIO)

    with pytest.raises(CallConflictError) as exc:
        calls.create("c", "C", "b", "B", CallType.AUDIO)
    assert exc.value.call_id == first.id

    calls.end(first.id)
    assert calls.create("c", "C", "b", "B", CallType.AUDIO).status == CallStatus.PENDING


async def test_relay_drops_conflicting_call(clock):
    hub = ProximityHub(Settings(_env_file=None, enforce_single_active_call=True), clock=clock)
    caller, _ = connect(hub, "caller")
    _, receiver_ch = connect(hub, "receiver")

    assert await start_call(hub, caller) is not None
    assert await start_call(hub, caller) is None
    assert len(receiver_ch.of_type("incoming_call")) == 1


async def test_pending_calls_expire_when_timeout_configured(clock):
    hub = ProximityHub(Settings(_env_file=None, pending_call_timeout_seconds=60), clock=clock)
    caller, caller_ch = connect(hub, "caller")
    call = await start_call(hub, caller)

    clock.advance(seconds=30)
    assert await hub.expire_pending_calls() == 0

    clock.advance(seconds=30)
    assert await hub.expire_pending_calls() == 1
    assert hub.calls.get(call.id).status == CallStatus.MISSED
    assert caller_ch.sent == [{"type": "call_missed", "callId": call.id, "status": "missed"}]


async def test_pending_calls_never_expire_by_default(hub, clock):
    caller, _ = connect(hub, "caller")
    call = await start_call(hub, caller)
    clock.advance(days=7)
    assert await hub.expire_pending_calls() == 0
    assert hub.calls.get(call.id).status == CallStatus.PENDING


def test_active_call_lookup(clock):
    calls = CallRegistry(clock=clock)
    call = calls.create("a", "A", "b", "B", CallType.VIDEO)
    assert calls.active_call_for("b").id == call.id
    calls.accept(call.id)
    assert calls.active_call_for("a").status == CallStatus.ACCEPTED
    calls.end(call.id)
    assert calls.active_call_for("a") is None
    assert calls.expire_pending(timedelta(seconds=0)) == []
