"""통화 상태 머신 모듈.

클라이언트 하나의 통화 단계(idle / outgoing-ringing / incoming-ringing / active)를
관리하고, 단계 전이에 따라 로컬 미디어 획득과 negotiation 드라이버를 구동합니다.

State Transitions:
    idle --start_call--> outgoing-ringing --call-accepted--> active
    idle --incoming-call--> incoming-ringing --accept--> active
    outgoing-ringing --call-rejected--> idle
    incoming-ringing --reject--> idle
    (모든 단계) --call-ended / call-rejected / 상대 disconnect / hang_up--> idle

Concurrency:
    - 새 통화 시작 가드는 첫 suspension 이전에 동기적으로 검사됨
    - 종료 이벤트는 lock 없이 즉시 세션을 폐기함
    - negotiation 단계는 lock으로 직렬화되고, 각 비동기 완료는
      session_id로 현재 세션인지 확인한 뒤에만 반영됨

Presentation Events (pyee):
    phase(CallPhase), incoming-call(caller, call_type), remote-track(track),
    call-rejected(name), call-ended(name), call-failed(error)

Examples:
    >>> machine = CallStateMachine(client.send, "r1", "alice")
    >>> machine.on("incoming-call", lambda caller, kind: print(caller, kind))
    >>> await machine.start_call("video")
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from aiortc import RTCPeerConnection
from pyee.asyncio import AsyncIOEventEmitter

from ..signaling import events
from .errors import CallAlreadyActiveError, CallStateError, MediaAcquisitionError, NegotiationError
from .media import DeviceMediaProvider, LocalMedia, MediaProvider
from .negotiation import PeerNegotiationDriver, create_peer_connection
from .session import CallPhase, CallSession

logger = logging.getLogger(__name__)

SendCallable = Callable[[str, Dict[str, Any]], Awaitable[None]]


class CallStateMachine(AsyncIOEventEmitter):
    """클라이언트 하나의 통화 세션을 관리하는 상태 머신.

    Attributes:
        room_id (str): 입장한 룸 ID
        display_name (str): 내 표시 이름
        media_provider (MediaProvider): 로컬 미디어 획득 구현
    """

    def __init__(
        self,
        send: SendCallable,
        room_id: str,
        display_name: str,
        media_provider: Optional[MediaProvider] = None,
        peer_connection_factory: Optional[Callable[[], RTCPeerConnection]] = None,
    ):
        super().__init__()
        self.room_id = room_id
        self.display_name = display_name
        self.media_provider = media_provider or DeviceMediaProvider()
        self._send = send
        self._pc_factory = peer_connection_factory or create_peer_connection
        self._session: Optional[CallSession] = None
        self._negotiation_lock = asyncio.Lock()
        self._inbound = {
            events.INCOMING_CALL: self.on_incoming_call,
            events.CALL_ACCEPTED: self.on_call_accepted,
            events.CALL_REJECTED: self.on_call_rejected,
            events.CALL_ENDED: self.on_call_ended,
            events.USER_DISCONNECTED: self.on_user_disconnected,
            events.OFFER: self.on_offer,
            events.ANSWER: self.on_answer,
            events.ICE_CANDIDATE: self.on_ice_candidate,
        }

    @property
    def phase(self) -> CallPhase:
        return self._session.phase if self._session else CallPhase.IDLE

    @property
    def session(self) -> Optional[CallSession]:
        return self._session

    @property
    def local_track_count(self) -> int:
        """현재 보유 중인 로컬 트랙 수."""
        if self._session is None or self._session.media is None:
            return 0
        return self._session.media.track_count

    # ------------------------------------------------------------------
    # 로컬 동작
    # ------------------------------------------------------------------

    async def start_call(self, call_type: str = events.CALL_TYPE_VIDEO) -> None:
        """룸의 상대에게 통화를 요청합니다.

        Args:
            call_type: "audio" 또는 "video"

        Raises:
            ValueError: 알 수 없는 통화 종류
            CallAlreadyActiveError: idle이 아닐 때 (미디어 획득/이벤트 전송 없음)
        """
        if call_type not in events.CALL_TYPES:
            raise ValueError(f"알 수 없는 통화 종류: {call_type}")
        if self._session is not None:
            raise CallAlreadyActiveError(f"이미 통화 중입니다 ({self._session.phase.value})")

        session = CallSession(phase=CallPhase.OUTGOING_RINGING, call_type=call_type)
        self._session = session
        self._announce(session)

        if await self._acquire_media(session) is None:
            return

        await self._send(events.CALL_USER, {
            "roomId": self.room_id,
            "name": self.display_name,
            "callType": call_type,
        })
        logger.info(f"[Call] {call_type} 통화 요청 전송 (룸: {self.room_id})")

    async def accept(self) -> None:
        """수신 중인 통화를 수락합니다.

        Raises:
            CallStateError: incoming-ringing 단계가 아닐 때
        """
        session = self._require(CallPhase.INCOMING_RINGING)
        self._set_phase(session, CallPhase.ACTIVE)

        if await self._acquire_media(session, notify_event=events.REJECT_CALL) is None:
            return

        await self._send(events.ACCEPT_CALL, {"roomId": self.room_id, "name": self.display_name})
        logger.info(f"[Call] {session.peer_name}의 통화 수락")

    async def reject(self) -> None:
        """수신 중인 통화를 거절합니다. 획득한 미디어가 없으므로 해제할 것도 없습니다.

        Raises:
            CallStateError: incoming-ringing 단계가 아닐 때
        """
        session = self._require(CallPhase.INCOMING_RINGING)
        await self._teardown(session)
        await self._send(events.REJECT_CALL, {"roomId": self.room_id, "name": self.display_name})
        logger.info(f"[Call] {session.peer_name}의 통화 거절")

    async def hang_up(self) -> None:
        """현재 통화를 종료합니다. 통화가 없으면 아무 일도 하지 않습니다."""
        session = self._session
        if session is None:
            logger.debug("[Call] 종료할 통화 없음")
            return
        if session.phase == CallPhase.INCOMING_RINGING:
            await self.reject()
            return

        await self._teardown(session)
        await self._send(events.END_CALL, {"roomId": self.room_id})
        logger.info("[Call] 통화 종료 (로컬)")

    def toggle_audio(self) -> Optional[bool]:
        """마이크 켜기/끄기. 바뀐 상태를 반환하며 트랙이 없으면 None."""
        return self._toggle("audio")

    def toggle_video(self) -> Optional[bool]:
        """카메라 켜기/끄기. 바뀐 상태를 반환하며 트랙이 없으면 None."""
        return self._toggle("video")

    # ------------------------------------------------------------------
    # 수신 이벤트
    # ------------------------------------------------------------------

    async def handle_event(self, event: str, data: Dict[str, Any]) -> bool:
        """릴레이 이벤트를 해당 핸들러로 전달합니다.

        Returns:
            bool: 통화 관련 이벤트였으면 True
        """
        handler = self._inbound.get(event)
        if handler is None:
            return False
        await handler(data or {})
        return True

    async def on_incoming_call(self, data: Dict[str, Any]) -> None:
        caller = data.get("senderName")
        call_type = events.CALL_TYPE_VIDEO if data.get("callType") == events.CALL_TYPE_VIDEO else events.CALL_TYPE_AUDIO

        if self._session is not None:
            logger.info(f"[Call] 통화 중, {caller}의 {call_type} 통화 요청 무시")
            return

        session = CallSession(phase=CallPhase.INCOMING_RINGING, call_type=call_type, peer_name=caller)
        self._session = session
        self._announce(session)
        self.emit("incoming-call", caller, call_type)

    async def on_call_accepted(self, data: Dict[str, Any]) -> None:
        session = self._session
        if session is None or session.phase != CallPhase.OUTGOING_RINGING:
            logger.debug(f"[Call] 발신 대기 중이 아님, call-accepted 무시 (phase={self.phase.value})")
            return

        session.peer_name = data.get("senderName")
        self._set_phase(session, CallPhase.ACTIVE)

        async with self._negotiation_lock:
            if not self._is_current(session):
                return
            if session.media is None:
                if await self._acquire_media(session, notify_event=events.END_CALL) is None:
                    return
            driver = self._ensure_driver(session)
            try:
                await driver.initiate_offer()
            except NegotiationError as e:
                await self._fail(session, e, notify_event=events.END_CALL)

    async def on_call_rejected(self, data: Dict[str, Any]) -> None:
        sender = data.get("senderName")
        session = self._session
        if session is None or not self._from_peer(session, sender):
            return
        await self._teardown(session)
        logger.info(f"[Call] {sender}이(가) 통화를 거절함")
        self.emit("call-rejected", sender)

    async def on_call_ended(self, data: Dict[str, Any]) -> None:
        sender = data.get("senderName")
        session = self._session
        if session is None or not self._from_peer(session, sender):
            return
        await self._teardown(session)
        logger.info(f"[Call] {sender}이(가) 통화를 종료함")
        self.emit("call-ended", sender)

    async def on_user_disconnected(self, data: Dict[str, Any]) -> None:
        name = data.get("name")
        session = self._session
        if session is None:
            return
        ringing_unknown_peer = session.peer_name is None and session.phase == CallPhase.OUTGOING_RINGING
        if session.peer_name != name and not ringing_unknown_peer:
            return
        await self._teardown(session)
        logger.info(f"[Call] 상대 {name} 연결 끊김, 통화 정리")
        self.emit("call-ended", name)

    async def on_offer(self, data: Dict[str, Any]) -> None:
        session = self._negotiating_session(data, events.OFFER, require_driver=False)
        if session is None:
            return

        async with self._negotiation_lock:
            if not self._is_current(session):
                return
            driver = self._ensure_driver(session)
            try:
                await driver.respond_to_offer(data.get("sdp"))
            except NegotiationError as e:
                await self._fail(session, e, notify_event=events.END_CALL)

    async def on_answer(self, data: Dict[str, Any]) -> None:
        session = self._negotiating_session(data, events.ANSWER, require_driver=True)
        if session is None:
            return

        async with self._negotiation_lock:
            if not self._is_current(session) or session.driver is None:
                return
            try:
                await session.driver.apply_answer(data.get("sdp"))
            except NegotiationError as e:
                await self._fail(session, e, notify_event=events.END_CALL)

    async def on_ice_candidate(self, data: Dict[str, Any]) -> None:
        session = self._negotiating_session(data, events.ICE_CANDIDATE, require_driver=True)
        if session is None:
            return

        async with self._negotiation_lock:
            if not self._is_current(session) or session.driver is None:
                return
            await session.driver.apply_remote_candidate(data.get("candidate"))

    # ------------------------------------------------------------------
    # 내부 헬퍼
    # ------------------------------------------------------------------

    def _is_current(self, session: CallSession) -> bool:
        return self._session is not None and self._session.session_id == session.session_id

    def _require(self, phase: CallPhase) -> CallSession:
        session = self._session
        if session is None or session.phase != phase:
            raise CallStateError(f"{phase.value} 단계가 아닙니다 (현재: {self.phase.value})")
        return session

    def _announce(self, session: CallSession) -> None:
        logger.info(f"[Call] 세션 #{session.session_id} 시작: {session.phase.value} ({session.call_type})")
        self.emit("phase", session.phase)

    def _set_phase(self, session: CallSession, phase: CallPhase) -> None:
        logger.info(f"[Call] 세션 #{session.session_id}: {session.phase.value} → {phase.value}")
        session.phase = phase
        self.emit("phase", phase)

    @staticmethod
    def _from_peer(session: CallSession, sender: Optional[str]) -> bool:
        return session.peer_name is None or session.peer_name == sender

    def _negotiating_session(self, data: Dict[str, Any], event: str, require_driver: bool) -> Optional[CallSession]:
        """negotiation 이벤트를 처리할 세션을 찾습니다. 대상이 아니면 None."""
        target = data.get("targetName")
        if target is not None and target != self.display_name:
            logger.debug(f"[Call] {target} 대상 {event}, 무시")
            return None

        session = self._session
        if session is None or session.phase != CallPhase.ACTIVE or (require_driver and session.driver is None):
            logger.warning(f"[Call] negotiation 핸들 없음, {event} 무시 (phase={self.phase.value})")
            return None

        sender = data.get("senderName")
        if session.peer_name is not None and sender != session.peer_name:
            logger.debug(f"[Call] 통화 상대가 아닌 {sender}의 {event}, 무시")
            return None
        return session

    async def _acquire_media(self, session: CallSession, notify_event: Optional[str] = None) -> Optional[LocalMedia]:
        """세션용 로컬 미디어를 획득합니다.

        실패하면 세션을 정리하고 None을 반환합니다. 획득하는 사이 세션이
        끝났으면 받은 미디어를 즉시 해제합니다.
        """
        try:
            media = await self.media_provider.acquire(video=session.is_video)
        except MediaAcquisitionError as e:
            await self._fail(session, e, notify_event=notify_event)
            return None

        if not self._is_current(session):
            logger.info("[Call] 세션 종료 후 미디어 획득 완료, 즉시 해제")
            media.stop()
            return None
        if session.media is not None:
            media.stop()
            return session.media

        session.media = media
        return media

    def _ensure_driver(self, session: CallSession) -> PeerNegotiationDriver:
        if session.driver is None:
            session.driver = PeerNegotiationDriver(
                self._send,
                self.room_id,
                session.peer_name,
                peer_connection=self._pc_factory(),
                on_remote_track=lambda track: self.emit("remote-track", track),
            )
            session.driver.add_local_media(session.media)
        return session.driver

    async def _teardown(self, session: CallSession) -> bool:
        """세션을 폐기하고 리소스를 해제합니다. 이미 폐기된 세션이면 False."""
        if not self._is_current(session):
            return False

        self._session = None
        media, driver = session.media, session.driver
        session.media = None
        session.driver = None
        session.phase = CallPhase.IDLE

        if media is not None:
            media.stop()
        if driver is not None:
            await driver.close()

        logger.info(f"[Call] 세션 #{session.session_id} 종료")
        self.emit("phase", CallPhase.IDLE)
        return True

    async def _fail(self, session: CallSession, error: Exception, notify_event: Optional[str] = None) -> None:
        if not self._is_current(session):
            logger.debug(f"[Call] 이미 종료된 세션 #{session.session_id}의 오류 무시: {error}")
            return

        logger.error(f"[Call] 통화 실패: {error}")
        await self._teardown(session)
        if notify_event == events.REJECT_CALL:
            await self._send(events.REJECT_CALL, {"roomId": self.room_id, "name": self.display_name})
        elif notify_event == events.END_CALL:
            await self._send(events.END_CALL, {"roomId": self.room_id})
        self.emit("call-failed", error)

    def _toggle(self, kind: str) -> Optional[bool]:
        session = self._session
        if session is None or session.media is None:
            return None
        return session.media.toggle(kind)
