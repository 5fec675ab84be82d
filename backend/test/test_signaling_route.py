"""/ws 시그널링 엔드포인트와 HTTP API 테스트.

FastAPI TestClient로 두 참가자의 입장, 채팅, 퇴장 흐름을 확인합니다.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from roomcall.signaling import ConnectionHub, RoomRegistry, SignalingRelay
from routes import health_router, init_signaling_managers, signaling_router


@pytest.fixture
def client():
    registry = RoomRegistry()
    hub = ConnectionHub()
    app = FastAPI()
    app.include_router(health_router)
    app.include_router(signaling_router)
    init_signaling_managers(SignalingRelay(registry, hub), hub)

    with TestClient(app) as test_client:
        yield test_client


def _join(ws, room_id, name):
    ws.send_json({"type": "join-room", "data": {"roomId": room_id, "name": name}})


def test_join_chat_and_leave(client):
    with client.websocket_connect("/ws") as alice:
        _join(alice, "r1", "alice")
        assert alice.receive_json() == {"type": "existing-users", "data": {"users": []}}

        with client.websocket_connect("/ws") as bob:
            _join(bob, "r1", "bob")
            assert bob.receive_json() == {"type": "existing-users", "data": {"users": ["alice"]}}
            assert alice.receive_json() == {"type": "user-connected", "data": {"name": "bob"}}

            alice.send_json({"type": "send-message", "data": {"roomId": "r1", "text": "hi"}})
            message = bob.receive_json()
            assert message["type"] == "receive-message"
            assert message["data"]["senderName"] == "alice"
            assert message["data"]["text"] == "hi"

        assert alice.receive_json() == {"type": "user-disconnected", "data": {"name": "bob"}}


def test_malformed_frames_are_skipped(client):
    with client.websocket_connect("/ws") as alice:
        alice.send_text("not json")
        alice.send_text("[1, 2]")
        _join(alice, "r1", "alice")

        assert alice.receive_json()["type"] == "existing-users"


def test_join_without_room_reports_error(client):
    with client.websocket_connect("/ws") as alice:
        alice.send_json({"type": "join-room", "data": {"name": "alice"}})

        assert alice.receive_json() == {"type": "error", "data": {"message": "roomId is required"}}


def test_health_reports_counts(client):
    with client.websocket_connect("/ws") as alice:
        _join(alice, "r1", "alice")
        alice.receive_json()

        body = client.get("/api/health").json()

    assert body["status"] == "ok"
    assert body["rooms"] == 1
    assert body["members"] == 1
