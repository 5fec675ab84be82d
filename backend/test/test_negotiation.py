"""PeerNegotiationDriver 테스트.

FakePeerConnection으로 offer/answer/ICE 교환 결과가 올바른 시그널링
이벤트로 나가는지 확인합니다.
"""

import asyncio

import pytest
from aiortc import RTCIceCandidate

from roomcall.call.errors import NegotiationError
from roomcall.call.media import LocalMedia
from roomcall.call.negotiation import (
    PeerNegotiationDriver,
    build_ice_servers,
    candidate_from_dict,
    candidate_to_dict,
    description_from_dict,
)
from roomcall.config import ICEServerConfig

from conftest import FakePeerConnection, FakeTrack, VALID_CANDIDATE


@pytest.fixture
def pc():
    return FakePeerConnection()


@pytest.fixture
def driver(outbox, pc):
    return PeerNegotiationDriver(outbox.send, "r1", "bob", peer_connection=pc)


async def test_initiate_offer_sends_local_description(driver, outbox, pc):
    driver.add_local_media(LocalMedia([FakeTrack("audio"), FakeTrack("video")]))

    sent = await driver.initiate_offer()

    assert sent == {"type": "offer", "sdp": "v=0 offer"}
    assert outbox.sent == [("offer", {"roomId": "r1", "sdp": sent, "targetName": "bob"})]
    assert len(pc.tracks) == 2


async def test_respond_to_offer_sends_answer(driver, outbox, pc):
    sent = await driver.respond_to_offer({"type": "offer", "sdp": "v=0 offer"})

    assert pc.remoteDescription.type == "offer"
    assert sent["type"] == "answer"
    assert outbox.events == ["answer"]


async def test_apply_answer_sets_remote_description(driver, pc):
    await driver.initiate_offer()
    await driver.apply_answer({"type": "answer", "sdp": "v=0 answer"})

    assert pc.remoteDescription.sdp == "v=0 answer"


async def test_remote_description_failure_raises(driver, pc):
    pc.fail_remote = True

    with pytest.raises(NegotiationError):
        await driver.respond_to_offer({"type": "offer", "sdp": "garbage"})


async def test_malformed_description_raises():
    with pytest.raises(NegotiationError):
        description_from_dict({"sdp": "v=0"})
    with pytest.raises(NegotiationError):
        description_from_dict({"type": "bogus", "sdp": "v=0"})
    with pytest.raises(NegotiationError):
        description_from_dict("v=0")


async def test_local_candidate_is_forwarded_immediately(driver, outbox, pc):
    candidate = candidate_from_dict(VALID_CANDIDATE)

    pc.emit("icecandidate", candidate)
    for _ in range(3):
        await asyncio.sleep(0)

    assert outbox.named("ice-candidate") == [{
        "roomId": "r1",
        "candidate": candidate_to_dict(candidate),
        "targetName": "bob",
    }]


async def test_candidates_after_close_are_not_sent(driver, outbox, pc):
    await driver.close()

    pc.emit("icecandidate", candidate_from_dict(VALID_CANDIDATE))
    for _ in range(3):
        await asyncio.sleep(0)

    assert outbox.sent == []
    assert pc.closed


async def test_remote_candidate_added(driver, pc):
    assert await driver.apply_remote_candidate(VALID_CANDIDATE) is True

    added = pc.candidates[0]
    assert added.ip == "192.168.1.2"
    assert added.port == 50000
    assert added.sdpMid == "0"


async def test_remote_candidate_failures_are_swallowed(driver, pc):
    assert await driver.apply_remote_candidate({"candidate": "candidate:garbage"}) is False
    assert await driver.apply_remote_candidate(None) is False

    pc.fail_candidate = True
    assert await driver.apply_remote_candidate(VALID_CANDIDATE) is False


async def test_answer_completing_after_close_is_discarded(driver, outbox, pc):
    pc.gate = asyncio.Event()
    task = asyncio.create_task(driver.respond_to_offer({"type": "offer", "sdp": "v=0 offer"}))
    await asyncio.sleep(0)

    await driver.close()
    pc.gate.set()

    assert await task is None
    assert outbox.sent == []


async def test_close_is_idempotent(driver, pc):
    await driver.close()
    await driver.close()
    assert driver.closed


def test_remote_track_callback():
    seen = []
    pc = FakePeerConnection()
    PeerNegotiationDriver(lambda *args: None, "r1", "bob", peer_connection=pc, on_remote_track=seen.append)
    track = FakeTrack("video")

    pc.emit("track", track)

    assert seen == [track]


def test_candidate_wire_format():
    candidate = RTCIceCandidate(
        component=1, foundation="1", ip="192.168.1.2", port=50000,
        priority=2130706431, protocol="udp", type="host", sdpMid="0", sdpMLineIndex=0,
    )

    data = candidate_to_dict(candidate)

    assert data["candidate"].startswith("candidate:1 1 udp 2130706431 192.168.1.2 50000 typ host")
    assert data["sdpMid"] == "0"
    assert data["sdpMLineIndex"] == 0


def test_ice_servers_include_turn_only_when_configured():
    stun_only = build_ice_servers(ICEServerConfig(
        TURN_SERVER_URL=None, TURN_USERNAME=None, TURN_CREDENTIAL=None, STUN_SERVER_URL=None,
    ))
    assert [server.urls for server in stun_only] == [
        ["stun:stun.l.google.com:19302"],
        ["stun:stun1.l.google.com:19302"],
    ]

    with_turn = build_ice_servers(ICEServerConfig(
        TURN_SERVER_URL="turn:turn.example.com:3478", TURN_USERNAME="u", TURN_CREDENTIAL="p",
        STUN_SERVER_URL="stun:stun.example.com:3478",
    ))
    assert with_turn[0].urls == ["stun:stun.example.com:3478"]
    assert with_turn[-1].username == "u"
