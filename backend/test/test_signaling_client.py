"""SignalingClient 테스트.

실제 서버 없이 WebSocket 대역으로 채팅 전송, 참가자 목록 갱신,
통화 이벤트 전달을 확인합니다.
"""

import asyncio
import json

import pytest

from roomcall.call import CallPhase, SignalingClient
from roomcall.signaling import RoomRegistry, SignalingRelay, events

from conftest import FakeMediaProvider, FakePeerConnection, RecordingHub


class FakeWebSocket:
    def __init__(self):
        self.frames = []
        self.closed = False

    async def send(self, raw):
        self.frames.append(json.loads(raw))

    async def close(self):
        self.closed = True


@pytest.fixture
def client():
    client = SignalingClient(
        "r1", "alice",
        media_provider=FakeMediaProvider(),
        peer_connection_factory=FakePeerConnection,
    )
    client._ws = FakeWebSocket()
    return client


async def test_send_message_strips_and_echoes(client):
    echo = await client.send_message("  hello  ")

    assert client._ws.frames == [{"type": "send-message", "data": {"roomId": "r1", "text": "hello"}}]
    assert echo["senderName"] == "alice"
    assert echo["text"] == "hello"
    assert echo["isLocal"] is True


async def test_blank_message_is_not_sent(client):
    assert await client.send_message("   ") is None
    assert client._ws.frames == []


async def test_roster_follows_presence_events(client):
    rosters = []
    client.on("participants", rosters.append)

    await client._dispatch("existing-users", {"users": ["bob", "carol"]})
    await client._dispatch("user-connected", {"name": "dave"})
    await client._dispatch("user-disconnected", {"name": "bob"})

    assert client.participants == {"carol", "dave"}
    assert rosters[0] == {"bob", "carol"}


async def test_received_message_is_surfaced(client):
    messages = []
    client.on("message", messages.append)

    await client._dispatch("receive-message", {
        "senderName": "bob", "text": "hi", "serverTimestamp": "2026-01-01T10:00:00",
    })

    assert messages == [{
        "senderName": "bob", "text": "hi", "timestamp": "2026-01-01T10:00:00", "isLocal": False,
    }]


async def test_call_events_reach_state_machine(client):
    await client._dispatch("incoming-call", {"senderName": "bob", "callType": "audio"})
    assert client.call.phase == CallPhase.INCOMING_RINGING

    await client._dispatch("call-ended", {"senderName": "bob"})
    assert client.call.phase == CallPhase.IDLE


async def test_call_accepted_is_handled_in_background(client):
    await client.call.start_call("audio")

    await client._dispatch("call-accepted", {"senderName": "bob"})
    for _ in range(3):
        await asyncio.sleep(0)

    assert client.call.phase == CallPhase.ACTIVE
    assert [frame["type"] for frame in client._ws.frames] == ["call-user", "offer"]


async def test_close_hangs_up_and_closes_socket(client):
    ws = client._ws
    await client.call.start_call("audio")

    await client.close()

    assert client.call.phase == CallPhase.IDLE
    assert ws.frames[-1] == {"type": "end-call", "data": {"roomId": "r1"}}
    assert ws.closed
    assert not client.connected


async def test_failed_background_task_is_logged(client, caplog):
    async def boom():
        raise RuntimeError("negotiation exploded")

    client._spawn(boom())
    for _ in range(3):
        await asyncio.sleep(0)

    assert not client._pending
    assert "negotiation exploded" in caplog.text


async def test_close_waits_for_cancelled_tasks(client):
    started = asyncio.Event()
    finished = []

    async def slow():
        started.set()
        try:
            await asyncio.sleep(60)
        finally:
            finished.append(True)

    client._spawn(slow())
    await started.wait()

    await client.close()

    assert finished == [True]
    assert not client._pending


async def test_roster_matches_server_after_peer_renames(client):
    hub = RecordingHub()
    relay = SignalingRelay(RoomRegistry(), hub)
    for connection_id, name in (("c-alice", "alice"), ("c-bob", "bob"), ("c-bob", "robert")):
        await relay.handle(connection_id, events.JOIN_ROOM, {"roomId": "r1", "name": name})

    for event, data in hub.to("c-alice"):
        await client._dispatch(event, data)

    assert client.participants == await relay.registry.members_of("r1", excluding="c-alice")
    assert client.participants == {"robert"}
