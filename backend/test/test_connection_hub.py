"""ConnectionHub 테스트.

연결별 송신 큐가 메시지를 순서대로 전송하고, 가득 차면 버리는지 확인합니다.
"""

import asyncio

from roomcall.signaling import ConnectionHub


async def _drain():
    for _ in range(5):
        await asyncio.sleep(0)


async def test_messages_are_sent_in_order_as_envelopes():
    received = []

    async def send(message):
        received.append(message)

    hub = ConnectionHub(max_size=8)
    hub.register("c1", send)

    assert hub.send("c1", "receive-message", {"text": "one"})
    assert hub.send("c1", "receive-message", {"text": "two"})
    await _drain()

    assert received == [
        {"type": "receive-message", "data": {"text": "one"}},
        {"type": "receive-message", "data": {"text": "two"}},
    ]
    await hub.close_all()


async def test_full_outbox_drops_event():
    async def send(message):
        pass

    hub = ConnectionHub(max_size=1)
    hub.register("c1", send)

    assert hub.send("c1", "a") is True
    assert hub.send("c1", "b") is False
    await hub.close_all()


async def test_send_to_unknown_connection_is_noop():
    hub = ConnectionHub()
    assert hub.send("nobody", "a") is False


async def test_unregister_stops_writer_and_forgets_connection():
    blocked = asyncio.Event()

    async def send(message):
        await blocked.wait()

    hub = ConnectionHub()
    hub.register("c1", send)
    hub.send("c1", "a")
    await _drain()

    await hub.unregister("c1")
    await hub.unregister("c1")

    assert len(hub) == 0
    assert hub.send("c1", "b") is False


async def test_writer_stops_after_send_failure():
    attempts = []

    async def send(message):
        attempts.append(message)
        raise ConnectionError("closed")

    hub = ConnectionHub()
    hub.register("c1", send)
    hub.send("c1", "a")
    hub.send("c1", "b")
    await _drain()

    assert len(attempts) == 1
    await hub.close_all()
