"""Peer-to-peer call signaling state machine."""

import asyncio

import pytest

from switchboard.calls.signaling import CallCoordinator, DEFAULT_ICE_SERVERS
from switchboard.errors import BusyError, CallError, PermissionDeniedError, TransportError
from switchboard.models.call import CallPhase
from switchboard.router import EventRouter

from conftest import FakeMedia

OFFER = {"type": "offer", "sdp": "v=0 remote offer"}
ANSWER = {"type": "answer", "sdp": "v=0 remote answer"}


def candidate(n: int) -> dict:
    return {"candidate": f"candidate:{n} 1 udp 2122260223 10.0.0.{n} 5000{n} typ host", "sdpMid": "0", "sdpMLineIndex": 0}


@pytest.fixture
def coordinator(channel, media, peers):
    coord = CallCoordinator(channel, media, peers)
    router = EventRouter()
    coord.register(router)
    channel.add_event_handler(router.route)
    return coord


@pytest.fixture
def phases(coordinator):
    seen = []
    coordinator.add_phase_listener(lambda phase, call: seen.append(phase))
    return seen


@pytest.mark.asyncio
async def test_outgoing_call_applies_every_candidate_once(coordinator, channel, peers, phases):
    call = await coordinator.initiate("p1")
    assert coordinator.phase is CallPhase.OUTGOING_RINGING
    assert channel.emitted[0] == ("callUser", {
        "userToCall": "p1",
        "signalData": {"type": "offer", "sdp": "v=0 offer"},
        "from": "self-sid",
        "name": "Admin",
    })
    assert peers.ice_servers == DEFAULT_ICE_SERVERS

    for n in range(3):
        await channel.deliver("ice-candidate", {"candidate": candidate(n), "from": "p1"})
    assert peers.last.candidates == []

    await channel.deliver("callAccepted", ANSWER)
    assert coordinator.phase is CallPhase.CONNECTING
    assert peers.last.remote_description == ANSWER

    for n in range(3, 5):
        await channel.deliver("ice-candidate", {"candidate": candidate(n), "from": "p1"})
    assert peers.last.candidates == [candidate(n) for n in range(5)]
    assert call.pending_ice_candidates == []

    peers.last.on_connection_state("connected")
    assert coordinator.phase is CallPhase.ACTIVE
    assert phases == [CallPhase.OUTGOING_RINGING, CallPhase.CONNECTING, CallPhase.ACTIVE]


@pytest.mark.asyncio
async def test_local_candidates_wait_for_offer(coordinator, channel, peers):
    await coordinator.initiate("p1")
    peers.last.on_ice_candidate(candidate(1))
    peers.last.on_ice_candidate(None)
    await asyncio.sleep(0)
    assert channel.emitted[-1] == ("ice-candidate", {"to": "p1", "candidate": candidate(1)})
    assert channel.names().count("ice-candidate") == 1


@pytest.mark.asyncio
async def test_incoming_call_accept(coordinator, channel, peers, phases):
    await channel.deliver("me", "self-123")
    await channel.deliver("callUser", {"from": "p2", "name": "Bo", "signal": OFFER})
    assert coordinator.phase is CallPhase.INCOMING_RINGING
    assert coordinator.call.peer_name == "Bo"
    await channel.deliver("ice-candidate", {"candidate": candidate(1), "from": "p2"})

    call = await coordinator.accept(video=False)
    assert call.local_id == "self-123"
    assert [t.kind for t in peers.last.tracks] == ["audio"]
    assert peers.last.remote_description == OFFER
    assert peers.last.candidates == [candidate(1)]
    assert channel.emitted[-1] == ("answerCall", {"signal": {"type": "answer", "sdp": "v=0 answer"}, "to": "p2"})
    assert phases == [CallPhase.INCOMING_RINGING, CallPhase.CONNECTING]


@pytest.mark.asyncio
async def test_busy_initiate_changes_nothing(coordinator, channel, peers):
    call = await coordinator.initiate("p1")
    emitted = list(channel.emitted)
    with pytest.raises(BusyError):
        await coordinator.initiate("p9")
    assert coordinator.call is call
    assert coordinator.phase is CallPhase.OUTGOING_RINGING
    assert channel.emitted == emitted
    assert len(peers.created) == 1


@pytest.mark.asyncio
async def test_offer_while_busy_is_rejected(coordinator, channel):
    call = await coordinator.initiate("p1")
    await channel.deliver("callUser", {"from": "p3", "signal": OFFER})
    assert coordinator.call is call
    assert channel.emitted[-1] == ("endCall", {"to": "p3"})


@pytest.mark.asyncio
async def test_permission_denied_on_accept_returns_to_idle(channel, peers):
    coordinator = CallCoordinator(channel, FakeMedia(deny=True), peers)
    coordinator.receive_offer("p2", OFFER)
    with pytest.raises(PermissionDeniedError):
        await coordinator.accept()
    assert coordinator.phase is CallPhase.IDLE
    assert coordinator.call is None
    assert channel.emitted == [("endCall", {"to": "p2"})]


@pytest.mark.asyncio
async def test_permission_denied_on_initiate_leaves_nothing(channel, peers):
    coordinator = CallCoordinator(channel, FakeMedia(deny=True), peers)
    with pytest.raises(PermissionDeniedError):
        await coordinator.initiate("p1")
    assert coordinator.phase is CallPhase.IDLE
    assert not coordinator.busy
    assert channel.emitted == []


@pytest.mark.asyncio
async def test_transport_failure_on_offer_releases_media(coordinator, channel, media, peers):
    channel.fail_on.add("callUser")
    with pytest.raises(TransportError):
        await coordinator.initiate("p1")
    assert coordinator.phase is CallPhase.IDLE
    assert all(t.stopped for t in media.acquired[0].tracks)
    assert peers.last.closed


@pytest.mark.asyncio
async def test_end_is_idempotent_and_clears_state(coordinator, channel, media, peers, phases):
    call = await coordinator.initiate("p1")
    await channel.deliver("ice-candidate", {"candidate": candidate(1), "from": "p1"})
    await coordinator.end()
    await coordinator.end()

    assert coordinator.phase is CallPhase.IDLE
    assert call.peer_id is None
    assert call.local_description is None and call.remote_description is None
    assert call.pending_ice_candidates == []
    assert all(t.stopped for t in media.acquired[0].tracks)
    assert peers.last.closed
    assert channel.names().count("endCall") == 1
    assert phases[-2:] == [CallPhase.ENDED, CallPhase.IDLE]


@pytest.mark.asyncio
async def test_remote_end_does_not_echo(coordinator, channel):
    await coordinator.initiate("p1")
    await channel.deliver("callEnded", {"from": "other"})
    assert coordinator.phase is CallPhase.OUTGOING_RINGING

    await channel.deliver("callEnded", {})
    assert coordinator.phase is CallPhase.IDLE
    assert "endCall" not in channel.names()


@pytest.mark.asyncio
async def test_answer_without_call_and_stray_candidates_are_dropped(coordinator, channel):
    await channel.deliver("callAccepted", ANSWER)
    await channel.deliver("ice-candidate", {"candidate": candidate(1)})
    assert coordinator.phase is CallPhase.IDLE


@pytest.mark.asyncio
async def test_failed_connection_ends_call(coordinator, channel, peers):
    await coordinator.initiate("p1")
    await channel.deliver("callAccepted", ANSWER)
    peers.last.on_connection_state("failed")
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert coordinator.phase is CallPhase.IDLE
    assert channel.emitted[-1] == ("endCall", {"to": "p1"})


@pytest.mark.asyncio
async def test_accept_without_incoming_call(coordinator):
    with pytest.raises(CallError):
        await coordinator.accept()


@pytest.mark.asyncio
async def test_end_during_setup_wins(channel, peers):
    gate = asyncio.Event()

    class SlowMedia(FakeMedia):
        async def acquire_local_media(self, audio=True, video=True):
            await gate.wait()
            return await super().acquire_local_media(audio, video)

    media = SlowMedia()
    coordinator = CallCoordinator(channel, media, peers)
    setup = asyncio.ensure_future(coordinator.initiate("p1"))
    await asyncio.sleep(0)
    assert coordinator.busy and coordinator.phase is CallPhase.IDLE

    await coordinator.end()
    gate.set()
    with pytest.raises(CallError):
        await setup
    assert coordinator.phase is CallPhase.IDLE
    assert all(t.stopped for t in media.acquired[0].tracks)
    assert peers.created == []
    assert "endCall" not in channel.names()


@pytest.mark.asyncio
async def test_candidates_gathered_during_setup_follow_the_offer(channel, media, peers):
    def gathering_factory(ice_servers, on_ice_candidate, on_connection_state):
        pc = peers(ice_servers, on_ice_candidate, on_connection_state)
        set_local = pc.set_local_description

        async def set_local_and_gather(description):
            await set_local(description)
            on_ice_candidate(candidate(1))
            on_ice_candidate(candidate(2))

        pc.set_local_description = set_local_and_gather
        return pc

    coordinator = CallCoordinator(channel, media, gathering_factory)
    await coordinator.initiate("p1")
    assert channel.names() == ["callUser", "ice-candidate", "ice-candidate"]
    assert [data["candidate"] for _, data in channel.emitted[1:]] == [candidate(1), candidate(2)]
