"""피어 negotiation 드라이버 모듈.

aiortc RTCPeerConnection(불투명한 negotiation 기능)을 감싸
offer/answer/ICE candidate 교환을 수행하고, 결과를 시그널링 이벤트로 내보냅니다.

WebRTC Flow:
    발신자: initiate_offer() → (answer 수신) → apply_answer()
    수신자: (offer 수신) → respond_to_offer()
    양쪽:   로컬 candidate 발견 즉시 ice-candidate 전송,
            원격 candidate는 apply_remote_candidate()

Wire Format:
    description: {"type": "offer" | "answer", "sdp": "..."}
    candidate:   {"candidate": "candidate:...", "sdpMid": "0", "sdpMLineIndex": 0}

Note:
    close() 이후 늦게 끝난 비동기 단계의 결과는 전송하지 않고 버립니다.
    aiortc 작업 자체는 취소할 수 없으므로 closed 플래그로 판단합니다.
    aiortc는 setLocalDescription 안에서 candidate 수집을 마치고 SDP에 담으므로
    icecandidate 이벤트를 발생시키지 않습니다. 로컬 candidate 전송은
    trickle ICE를 하는 연결 객체에서만 동작합니다.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiortc import (
    MediaStreamTrack,
    RTCConfiguration,
    RTCIceCandidate,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from ..config import ICEServerConfig, ice_config
from ..signaling import events
from .errors import NegotiationError
from .media import LocalMedia

logger = logging.getLogger(__name__)

SendCallable = Callable[[str, Dict[str, Any]], Awaitable[None]]
TrackCallback = Callable[[MediaStreamTrack], Any]


def build_ice_servers(config: ICEServerConfig = ice_config) -> List[RTCIceServer]:
    """설정에서 STUN/TURN 서버 목록을 만듭니다."""
    ice_servers = []

    if config.STUN_SERVER_URL:
        ice_servers.append(RTCIceServer(urls=[config.STUN_SERVER_URL]))

    for stun_url in config.DEFAULT_STUN_SERVERS:
        ice_servers.append(RTCIceServer(urls=[stun_url]))

    if config.has_turn_server:
        ice_servers.append(RTCIceServer(
            urls=[config.TURN_SERVER_URL],
            username=config.TURN_USERNAME,
            credential=config.TURN_CREDENTIAL
        ))
    else:
        logger.debug("[WebRTC] TURN 서버 설정 없음 - STUN만 사용")

    return ice_servers


def create_peer_connection() -> RTCPeerConnection:
    """기본 ICE 설정으로 RTCPeerConnection을 생성합니다."""
    return RTCPeerConnection(configuration=RTCConfiguration(iceServers=build_ice_servers()))


def description_to_dict(description: RTCSessionDescription) -> Dict[str, str]:
    return {"type": description.type, "sdp": description.sdp}


def description_from_dict(data: Any) -> RTCSessionDescription:
    """wire 형식 description을 RTCSessionDescription으로 변환합니다.

    Raises:
        NegotiationError: 형식이 잘못된 경우
    """
    if not isinstance(data, dict):
        raise NegotiationError(f"잘못된 session description: {data!r}")
    try:
        return RTCSessionDescription(sdp=data["sdp"], type=data["type"])
    except (KeyError, ValueError) as e:
        raise NegotiationError(f"잘못된 session description: {e}") from e


def candidate_to_dict(candidate: RTCIceCandidate) -> Dict[str, Any]:
    return {
        "candidate": "candidate:" + candidate_to_sdp(candidate),
        "sdpMid": candidate.sdpMid,
        "sdpMLineIndex": candidate.sdpMLineIndex,
    }


def candidate_from_dict(data: Dict[str, Any]) -> RTCIceCandidate:
    candidate_str = data.get("candidate", "")
    if candidate_str.startswith("candidate:"):
        candidate_str = candidate_str[10:]

    candidate = candidate_from_sdp(candidate_str)
    candidate.sdpMid = data.get("sdpMid")
    candidate.sdpMLineIndex = data.get("sdpMLineIndex")
    return candidate


class PeerNegotiationDriver:
    """통화 하나의 offer/answer/ICE 교환을 담당하는 클래스.

    Attributes:
        room_id (str): 이벤트를 보낼 룸
        target_name (str): 상대 표시 이름 (targetName 필드)
        pc (RTCPeerConnection): negotiation 기능
        closed (bool): close() 호출 여부

    Examples:
        >>> driver = PeerNegotiationDriver(client.send, "r1", "bob")
        >>> driver.add_local_media(media)
        >>> await driver.initiate_offer()
    """

    def __init__(
        self,
        send: SendCallable,
        room_id: str,
        target_name: str,
        peer_connection: Optional[RTCPeerConnection] = None,
        on_remote_track: Optional[TrackCallback] = None,
    ):
        self.room_id = room_id
        self.target_name = target_name
        self.pc = peer_connection if peer_connection is not None else create_peer_connection()
        self.closed = False
        self._send = send
        self._on_remote_track = on_remote_track

        @self.pc.on("icecandidate")
        async def on_ice_candidate(candidate):
            """로컬 candidate를 발견하는 즉시 전송합니다 (배치 없음)."""
            if candidate is None or self.closed:
                return
            await self._send(events.ICE_CANDIDATE, {
                "roomId": self.room_id,
                "candidate": candidate_to_dict(candidate),
                "targetName": self.target_name,
            })

        @self.pc.on("track")
        def on_track(track: MediaStreamTrack):
            """원격 트랙 도착. answer 적용 완료 전후 어느 때나 올 수 있음."""
            logger.info(f"[WebRTC] 원격 {track.kind} 트랙 수신 (상대: {self.target_name})")
            if self._on_remote_track and not self.closed:
                self._on_remote_track(track)

        @self.pc.on("connectionstatechange")
        async def on_connection_state_change():
            logger.info(f"[WebRTC] 연결 상태: {self.pc.connectionState} (상대: {self.target_name})")

    def add_local_media(self, media: Optional[LocalMedia]) -> None:
        """로컬 트랙을 연결에 추가합니다."""
        if media is None:
            return
        for track in media.tracks:
            self.pc.addTrack(track)

    async def initiate_offer(self) -> Optional[Dict[str, str]]:
        """offer를 만들어 로컬 description으로 설정하고 offer 이벤트로 보냅니다.

        Returns:
            Optional[Dict[str, str]]: 전송한 offer. 도중에 닫혔으면 None

        Raises:
            NegotiationError: offer 생성/설정 실패
        """
        try:
            offer = await self.pc.createOffer()
            if self.closed:
                return None
            await self.pc.setLocalDescription(offer)
        except Exception as e:
            raise NegotiationError(f"offer 생성 실패: {e}") from e

        return await self._send_local_description(events.OFFER)

    async def respond_to_offer(self, remote_description: Any) -> Optional[Dict[str, str]]:
        """원격 offer를 적용하고 answer를 만들어 보냅니다.

        Returns:
            Optional[Dict[str, str]]: 전송한 answer. 도중에 닫혔으면 None

        Raises:
            NegotiationError: description 설정 또는 answer 생성 실패
        """
        description = description_from_dict(remote_description)
        try:
            await self.pc.setRemoteDescription(description)
            if self.closed:
                return None
            answer = await self.pc.createAnswer()
            if self.closed:
                return None
            await self.pc.setLocalDescription(answer)
        except Exception as e:
            raise NegotiationError(f"answer 생성 실패: {e}") from e

        return await self._send_local_description(events.ANSWER)

    async def apply_answer(self, remote_description: Any) -> None:
        """offer를 보낸 연결에 원격 answer를 적용합니다.

        Raises:
            NegotiationError: description 설정 실패
        """
        description = description_from_dict(remote_description)
        if self.closed:
            return
        try:
            await self.pc.setRemoteDescription(description)
        except Exception as e:
            raise NegotiationError(f"answer 적용 실패: {e}") from e
        logger.info(f"[WebRTC] answer 적용 완료 (상대: {self.target_name})")

    async def apply_remote_candidate(self, candidate: Any) -> bool:
        """원격 ICE candidate를 추가합니다.

        형식이 잘못되었거나 늦게 도착한 candidate는 로그만 남기고 무시합니다.

        Returns:
            bool: 추가 성공 여부
        """
        if self.closed:
            return False
        if not isinstance(candidate, dict) or not candidate.get("candidate"):
            logger.debug(f"[WebRTC] 빈 ICE candidate 무시: {candidate!r}")
            return False
        try:
            await self.pc.addIceCandidate(candidate_from_dict(candidate))
            return True
        except Exception as e:
            logger.warning(f"[WebRTC] ICE candidate 추가 실패 (무시): {e}")
            return False

    async def close(self) -> None:
        """연결을 닫습니다. 여러 번 호출해도 안전합니다."""
        if self.closed:
            return
        self.closed = True
        try:
            await self.pc.close()
        except Exception as e:
            logger.warning(f"[WebRTC] 연결 종료 중 오류: {e}")
        logger.info(f"[WebRTC] negotiation 핸들 종료 (상대: {self.target_name})")

    async def _send_local_description(self, event: str) -> Optional[Dict[str, str]]:
        if self.closed or self.pc.localDescription is None:
            return None
        description = description_to_dict(self.pc.localDescription)
        await self._send(event, {
            "roomId": self.room_id,
            "sdp": description,
            "targetName": self.target_name,
        })
        logger.info(f"[WebRTC] {event} 전송 → {self.target_name}")
        return description
