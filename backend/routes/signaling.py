"""룸 시그널링 WebSocket 라우터.

룸 입장, 채팅, 통화 요청/수락/거절/종료, offer/answer/ICE candidate를
같은 룸의 다른 참가자에게 릴레이하는 WebSocket 엔드포인트를 제공합니다.

Message Format (양방향 JSON 텍스트 프레임):
    {"type": "<event>", "data": {...}}
"""

import json
import logging
import uuid
from typing import Optional, TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

if TYPE_CHECKING:
    from roomcall.signaling import ConnectionHub, RoomRegistry, SignalingRelay

logger = logging.getLogger(__name__)

router = APIRouter()

# 글로벌 참조 (app.py에서 설정됨)
_relay: Optional["SignalingRelay"] = None
_hub: Optional["ConnectionHub"] = None


def init_managers(relay: "SignalingRelay", hub: "ConnectionHub"):
    """릴레이와 연결 허브 인스턴스를 설정합니다.

    app.py에서 호출하여 글로벌 참조를 설정합니다.

    Args:
        relay: SignalingRelay 인스턴스
        hub: ConnectionHub 인스턴스
    """
    global _relay, _hub
    _relay = relay
    _hub = hub
    logger.info("시그널링 라우터 매니저 초기화 완료")


def get_registry() -> Optional["RoomRegistry"]:
    """현재 룸 레지스트리를 반환합니다 (초기화 전이면 None)."""
    return _relay.registry if _relay is not None else None


def get_hub() -> Optional["ConnectionHub"]:
    """현재 연결 허브를 반환합니다 (초기화 전이면 None)."""
    return _hub


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """룸 시그널링 WebSocket 엔드포인트.

    처리하는 메시지 타입:
        - join-room: 룸 입장 (roomId, name)
        - send-message: 채팅 메시지 (roomId, text)
        - call-user / accept-call / reject-call / end-call: 통화 제어
        - offer / answer / ice-candidate: WebRTC negotiation

    연결이 끊기면 같은 룸에 user-disconnected를 한 번 알립니다.

    Args:
        websocket: FastAPI WebSocket 연결 객체
    """
    if _relay is None or _hub is None:
        logger.error("매니저가 초기화되지 않음")
        await websocket.close(code=1011, reason="Server not ready")
        return

    await websocket.accept()

    connection_id = str(uuid.uuid4())
    _hub.register(connection_id, websocket.send_json)
    logger.info(f"연결 {connection_id[:8]} 수립")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"연결 {connection_id[:8]}: 잘못된 JSON 무시")
                continue
            if not isinstance(message, dict):
                logger.warning(f"연결 {connection_id[:8]}: 객체가 아닌 메시지 무시")
                continue

            await _relay.handle(connection_id, message.get("type"), message.get("data"))

    except WebSocketDisconnect:
        logger.info(f"연결 {connection_id[:8]} 끊김")
    except Exception as e:
        logger.error(f"연결 {connection_id[:8]}의 WebSocket 처리 중 오류: {e}", exc_info=True)
    finally:
        await _relay.disconnect(connection_id)
        await _hub.unregister(connection_id)
