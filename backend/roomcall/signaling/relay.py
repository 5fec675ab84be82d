"""시그널링 릴레이 모듈.

수신한 이벤트마다 레지스트리에서 송신자의 룸을 찾아, 송신자 표시 이름을
붙인 payload를 룸의 나머지 멤버에게 다시 보냅니다.

릴레이는 payload 내용(offer/answer SDP 등)을 해석하거나 검증하지 않으며,
송신자별 전송 순서 이상의 순서를 보장하지 않습니다.

Room Size:
    negotiation 이벤트(offer/answer/ice-candidate)도 targetName과 무관하게
    룸 전체에 전달됩니다. 수신 측이 targetName으로 걸러내므로 통화 기능은
    룸당 2명, 채팅은 N명을 전제로 합니다.

Event Flow:
    join-room     → existing-users (송신자에게), user-connected (룸에)
                    (이전 룸이나 이름이 다르면 이전 룸에 user-disconnected 먼저)
    send-message  → receive-message
    call-user     → incoming-call
    accept-call   → call-accepted
    reject-call   → call-rejected
    end-call      → call-ended
    offer/answer/ice-candidate → 같은 이름으로 전달
    (disconnect)  → user-disconnected
"""
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from . import events
from .hub import ConnectionHub
from .registry import RoomRegistry, RosterEntry

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "Anonymous"

Handler = Callable[[str, Dict[str, Any]], Awaitable[None]]


class SignalingRelay:
    """연결 핸들러가 호출하는 상태 없는 이벤트 라우터.

    Attributes:
        registry (RoomRegistry): 룸 멤버십
        hub (ConnectionHub): 연결별 송신 채널
    """

    def __init__(self, registry: RoomRegistry, hub: ConnectionHub):
        self.registry = registry
        self.hub = hub
        self._handlers: Dict[str, Handler] = {
            events.JOIN_ROOM: self._handle_join_room,
            events.SEND_MESSAGE: self._handle_send_message,
            events.CALL_USER: self._handle_call_user,
            events.ACCEPT_CALL: self._handle_accept_call,
            events.REJECT_CALL: self._handle_reject_call,
            events.END_CALL: self._handle_end_call,
            events.OFFER: self._handle_offer,
            events.ANSWER: self._handle_answer,
            events.ICE_CANDIDATE: self._handle_ice_candidate,
        }

    async def handle(self, connection_id: str, event: Optional[str], data: Optional[Dict[str, Any]]) -> None:
        """수신 이벤트 하나를 처리합니다.

        Args:
            connection_id: 송신 연결 ID
            event: 이벤트 이름
            data: 이벤트 payload
        """
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"알 수 없는 이벤트 타입: {event} (연결 {connection_id[:8]})")
            return
        await handler(connection_id, data if isinstance(data, dict) else {})

    async def disconnect(self, connection_id: str) -> None:
        """전송 종료 시 정리합니다.

        레지스트리의 원자적 remove가 항목을 돌려준 호출만 user-disconnected를
        보내므로, 정리가 중복 호출되어도 알림은 한 번만 나갑니다.
        """
        entry = await self.registry.remove(connection_id)
        if entry is None:
            logger.debug(f"연결 {connection_id[:8]}: 입장 기록 없음, 정리 생략")
            return
        await self._broadcast(entry.room_id, events.USER_DISCONNECTED,
                              {"name": entry.display_name}, exclude=connection_id)

    # ------------------------------------------------------------------
    # 이벤트 핸들러
    # ------------------------------------------------------------------

    async def _handle_join_room(self, connection_id: str, data: Dict[str, Any]) -> None:
        room_id = data.get("roomId")
        name = str(data.get("name") or "").strip() or DEFAULT_DISPLAY_NAME

        if not room_id:
            self.hub.send(connection_id, events.ERROR, {"message": "roomId is required"})
            return
        room_id = str(room_id)

        previous = await self.registry.join(connection_id, room_id, name)
        if previous is not None and (previous.room_id != room_id or previous.display_name != name):
            # 이전 이름은 이전 룸에서 퇴장 처리 (같은 룸에서 이름만 바뀐 경우 포함)
            await self._broadcast(previous.room_id, events.USER_DISCONNECTED,
                                  {"name": previous.display_name}, exclude=connection_id)

        others = await self.registry.members_of(room_id, excluding=connection_id)
        self.hub.send(connection_id, events.EXISTING_USERS, {"users": sorted(others)})
        await self._broadcast(room_id, events.USER_CONNECTED, {"name": name}, exclude=connection_id)

    async def _handle_send_message(self, connection_id: str, data: Dict[str, Any]) -> None:
        await self._forward(connection_id, data, events.RECEIVE_MESSAGE, lambda sender: {
            "senderName": sender.display_name,
            "text": data.get("text"),
            "serverTimestamp": datetime.now().isoformat(timespec="seconds"),
        })

    async def _handle_call_user(self, connection_id: str, data: Dict[str, Any]) -> None:
        await self._forward(connection_id, data, events.INCOMING_CALL, lambda sender: {
            "senderName": sender.display_name,
            "callType": data.get("callType"),
        })

    async def _handle_accept_call(self, connection_id: str, data: Dict[str, Any]) -> None:
        await self._forward(connection_id, data, events.CALL_ACCEPTED, _sender_only)

    async def _handle_reject_call(self, connection_id: str, data: Dict[str, Any]) -> None:
        await self._forward(connection_id, data, events.CALL_REJECTED, _sender_only)

    async def _handle_end_call(self, connection_id: str, data: Dict[str, Any]) -> None:
        await self._forward(connection_id, data, events.CALL_ENDED, _sender_only)

    async def _handle_offer(self, connection_id: str, data: Dict[str, Any]) -> None:
        await self._forward(connection_id, data, events.OFFER, lambda sender: {
            "sdp": data.get("sdp"),
            "senderName": sender.display_name,
            "targetName": data.get("targetName"),
        })

    async def _handle_answer(self, connection_id: str, data: Dict[str, Any]) -> None:
        await self._forward(connection_id, data, events.ANSWER, lambda sender: {
            "sdp": data.get("sdp"),
            "senderName": sender.display_name,
            "targetName": data.get("targetName"),
        })

    async def _handle_ice_candidate(self, connection_id: str, data: Dict[str, Any]) -> None:
        await self._forward(connection_id, data, events.ICE_CANDIDATE, lambda sender: {
            "candidate": data.get("candidate"),
            "senderName": sender.display_name,
            "targetName": data.get("targetName"),
        })

    # ------------------------------------------------------------------
    # 전송 헬퍼
    # ------------------------------------------------------------------

    async def _forward(
        self,
        connection_id: str,
        data: Dict[str, Any],
        event: str,
        build: Callable[[RosterEntry], Dict[str, Any]],
    ) -> None:
        """송신자의 룸을 찾아 나머지 멤버에게 이벤트를 보냅니다.

        입장하지 않은 송신자의 이벤트는 조용히 버립니다 (송신자에게 오류 없음).
        payload의 roomId가 레지스트리와 다르면 레지스트리의 룸을 사용합니다.
        """
        sender = await self.registry.lookup(connection_id)
        if sender is None:
            logger.debug(f"연결 {connection_id[:8]}: 룸 미입장 상태에서 '{event}' 요청, 무시")
            return

        claimed_room = data.get("roomId")
        if claimed_room is not None and str(claimed_room) != sender.room_id:
            logger.warning(f"연결 {connection_id[:8]}: roomId '{claimed_room}' 불일치, "
                           f"입장한 룸 '{sender.room_id}'로 전달")

        await self._broadcast(sender.room_id, event, build(sender), exclude=connection_id)

    async def _broadcast(self, room_id: str, event: str, payload: Dict[str, Any], exclude: Optional[str] = None) -> int:
        targets = await self.registry.peers_of(room_id, excluding=exclude)
        delivered = sum(1 for target in targets if self.hub.send(target, event, payload))
        logger.debug(f"룸 '{room_id}'에 '{event}' 전달: {delivered}/{len(targets)}")
        return delivered


def _sender_only(sender: RosterEntry) -> Dict[str, Any]:
    return {"senderName": sender.display_name}
