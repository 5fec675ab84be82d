"""통화 세션 상태 정의.

클라이언트 하나에는 최대 하나의 CallSession만 존재합니다.
"""
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..signaling.events import CALL_TYPE_VIDEO

if TYPE_CHECKING:
    from .media import LocalMedia
    from .negotiation import PeerNegotiationDriver

_session_ids = itertools.count(1)


class CallPhase(str, Enum):
    """통화 단계."""
    IDLE = "idle"
    OUTGOING_RINGING = "outgoing-ringing"
    INCOMING_RINGING = "incoming-ringing"
    ACTIVE = "active"


@dataclass
class CallSession:
    """진행 중이거나 대기 중인 통화와 그 리소스.

    Attributes:
        phase (CallPhase): 현재 단계 (IDLE이 되면 세션은 폐기됨)
        call_type (str): "audio" 또는 "video"
        peer_name (Optional[str]): 상대 표시 이름. 발신 대기 중에는 수락 전까지 None
        media (Optional[LocalMedia]): 획득한 로컬 미디어
        driver (Optional[PeerNegotiationDriver]): negotiation 핸들
        session_id (int): 비동기 완료가 현재 세션을 향하는지 확인하는 식별자
    """
    phase: CallPhase
    call_type: str
    peer_name: Optional[str] = None
    media: Optional["LocalMedia"] = None
    driver: Optional["PeerNegotiationDriver"] = None
    session_id: int = field(default_factory=lambda: next(_session_ids))

    @property
    def is_video(self) -> bool:
        return self.call_type == CALL_TYPE_VIDEO
