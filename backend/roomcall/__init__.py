"""roomcall 패키지.

룸 채팅과 1:1 WebRTC 통화 시그널링 시스템입니다.

Modules:
    signaling: 룸 레지스트리와 이벤트 릴레이 (서버)
    call: 통화 상태 머신, negotiation 드라이버, 시그널링 클라이언트
    config: 환경변수 기반 설정
    logging_config: 콘솔/파일 로그 설정

NOTE: 서버는 aiortc가 필요 없으므로 call 패키지는 여기서 import하지 않습니다.
"""

from .config import server_config, ice_config, media_config, client_config
from .signaling import RoomRegistry, ConnectionHub, SignalingRelay

__all__ = [
    # Config
    "server_config",
    "ice_config",
    "media_config",
    "client_config",
    # Signaling
    "RoomRegistry",
    "ConnectionHub",
    "SignalingRelay",
]
