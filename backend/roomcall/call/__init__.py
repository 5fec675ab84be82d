"""통화 클라이언트 모듈.

통화 상태 머신, 피어 negotiation 드라이버, 로컬 미디어 관리와
시그널링 서버 접속 클라이언트를 제공합니다.

Classes:
    SignalingClient: 룸 입장/채팅/통화 이벤트를 처리하는 클라이언트 세션
    CallStateMachine: 통화 단계 관리
    CallPhase: 통화 단계 (idle / outgoing-ringing / incoming-ringing / active)
    CallSession: 진행 중인 통화와 그 리소스
    PeerNegotiationDriver: offer/answer/ICE 교환
    LocalMedia: 로컬 트랙 묶음
    MediaProvider: 미디어 획득 인터페이스
    DeviceMediaProvider: MediaPlayer 기반 장치 미디어 획득
"""

from .errors import (
    CallError,
    CallStateError,
    CallAlreadyActiveError,
    MediaAcquisitionError,
    NegotiationError,
)
from .session import CallPhase, CallSession
from .media import SwitchableTrack, LocalMedia, MediaProvider, DeviceMediaProvider
from .negotiation import PeerNegotiationDriver, build_ice_servers, create_peer_connection
from .machine import CallStateMachine
from .client import SignalingClient

__all__ = [
    # Client
    "SignalingClient",
    "CallStateMachine",
    "CallPhase",
    "CallSession",
    # WebRTC
    "PeerNegotiationDriver",
    "build_ice_servers",
    "create_peer_connection",
    # Media
    "SwitchableTrack",
    "LocalMedia",
    "MediaProvider",
    "DeviceMediaProvider",
    # Errors
    "CallError",
    "CallStateError",
    "CallAlreadyActiveError",
    "MediaAcquisitionError",
    "NegotiationError",
]
