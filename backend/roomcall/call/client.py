"""시그널링 클라이언트 모듈.

시그널링 서버 WebSocket에 접속해 룸에 입장하고, 채팅/참가자 이벤트는
표시 계층(pyee 이벤트)으로, 통화 이벤트는 CallStateMachine으로 전달합니다.

Presentation Events (pyee):
    participants(set), user-connected(name), user-disconnected(name),
    message(dict), server-error(message), disconnected()
    + CallStateMachine 이벤트는 client.call 에서 구독

Examples:
    >>> client = SignalingClient("r1", "alice")
    >>> client.on("message", lambda msg: print(msg["senderName"], msg["text"]))
    >>> await client.connect()
    >>> await client.send_message("hi")
    >>> await client.call.start_call("video")
"""
import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

import websockets
from aiortc import RTCPeerConnection
from pyee.asyncio import AsyncIOEventEmitter

from ..config import client_config
from ..signaling import events
from .machine import CallStateMachine
from .media import MediaProvider

logger = logging.getLogger(__name__)

# 수신 즉시 처리하는 통화 이벤트 (negotiation lock을 기다리지 않음)
_IMMEDIATE_CALL_EVENTS = {events.CALL_ENDED, events.CALL_REJECTED, events.USER_DISCONNECTED, events.INCOMING_CALL}


class SignalingClient(AsyncIOEventEmitter):
    """룸 하나에 입장한 클라이언트 세션.

    Attributes:
        room_id (str): 룸 ID
        display_name (str): 내 표시 이름
        url (str): 시그널링 서버 WebSocket URL
        participants (Set[str]): 나를 제외한 룸 참가자 이름
        call (CallStateMachine): 통화 상태 머신
    """

    def __init__(
        self,
        room_id: str,
        display_name: str,
        url: str = client_config.SIGNALING_URL,
        media_provider: Optional[MediaProvider] = None,
        peer_connection_factory: Optional[Callable[[], RTCPeerConnection]] = None,
    ):
        super().__init__()
        self.room_id = room_id
        self.display_name = display_name
        self.url = url
        self.participants: Set[str] = set()
        self.call = CallStateMachine(
            self.send,
            room_id,
            display_name,
            media_provider=media_provider,
            peer_connection_factory=peer_connection_factory,
        )
        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        """서버에 접속하고 룸에 입장합니다."""
        logger.info(f"🔌 Connecting to signaling server: {self.url}")
        self._ws = await websockets.connect(self.url, ping_interval=20, ping_timeout=10)
        logger.info("✅ Signaling WebSocket connected")

        self._reader = asyncio.create_task(self._read_loop())
        await self.send(events.JOIN_ROOM, {"roomId": self.room_id, "name": self.display_name})

    async def send(self, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        """이벤트 하나를 서버로 보냅니다. 연결이 없으면 무시합니다."""
        if self._ws is None:
            logger.debug(f"연결 없음, '{event}' 전송 생략")
            return
        try:
            await self._ws.send(json.dumps(events.envelope(event, data)))
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning(f"'{event}' 전송 실패, 연결 종료됨: {e}")

    async def send_message(self, text: str) -> Optional[Dict[str, Any]]:
        """채팅 메시지를 보냅니다.

        앞뒤 공백을 제거한 결과가 비어 있으면 보내지 않습니다.

        Returns:
            Optional[Dict[str, Any]]: 로컬 표시용 메시지 (빈 메시지면 None)
        """
        text = (text or "").strip()
        if not text:
            return None

        await self.send(events.SEND_MESSAGE, {"roomId": self.room_id, "text": text})
        return {
            "senderName": self.display_name,
            "text": text,
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "isLocal": True,
        }

    async def close(self) -> None:
        """통화를 끊고 연결을 닫습니다."""
        await self.call.hang_up()

        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()

        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None

        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info(f"룸 '{self.room_id}' 퇴장")

    async def _read_loop(self) -> None:
        ws = self._ws
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"잘못된 JSON 수신, 무시: {raw[:100]!r}")
                    continue
                if not isinstance(message, dict):
                    continue
                await self._dispatch(message.get("type"), message.get("data") or {})
        except websockets.exceptions.ConnectionClosed:
            logger.info("🔌 Signaling WebSocket closed")
        finally:
            if self._ws is ws:
                self._ws = None
                await self.call.hang_up()
            self.emit("disconnected")

    async def _dispatch(self, event: Optional[str], data: Dict[str, Any]) -> None:
        if event == events.EXISTING_USERS:
            self.participants = set(data.get("users") or [])
            self.emit("participants", set(self.participants))

        elif event == events.USER_CONNECTED:
            name = data.get("name")
            self.participants.add(name)
            self.emit("user-connected", name)
            self.emit("participants", set(self.participants))

        elif event == events.USER_DISCONNECTED:
            name = data.get("name")
            self.participants.discard(name)
            self.emit("user-disconnected", name)
            self.emit("participants", set(self.participants))

        elif event == events.RECEIVE_MESSAGE:
            self.emit("message", {
                "senderName": data.get("senderName"),
                "text": data.get("text"),
                "timestamp": data.get("serverTimestamp"),
                "isLocal": False,
            })
            return

        elif event == events.ERROR:
            logger.error(f"서버 오류: {data.get('message')}")
            self.emit("server-error", data.get("message"))
            return

        if event in _IMMEDIATE_CALL_EVENTS:
            await self.call.handle_event(event, data)
        elif event in events.NEGOTIATION_EVENTS or event == events.CALL_ACCEPTED:
            # 수신 루프를 막지 않도록 태스크로 실행 (상태 머신 lock이 순서 보장)
            self._spawn(self.call.handle_event(event, data))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"통화 이벤트 처리 중 오류: {error}", exc_info=error)
