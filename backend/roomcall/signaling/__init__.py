"""시그널링 서버 모듈.

룸 멤버십 추적과 이벤트 릴레이를 제공합니다.

Classes:
    RoomRegistry: 연결 → (룸, 표시 이름) 레지스트리
    RosterEntry: 레지스트리 항목
    ConnectionHub: 연결별 fire-and-forget 송신 채널
    SignalingRelay: 수신 이벤트 라우터
"""

from . import events
from .registry import RoomRegistry, RosterEntry
from .hub import ConnectionHub, Channel
from .relay import SignalingRelay

__all__ = [
    "events",
    "RoomRegistry",
    "RosterEntry",
    "ConnectionHub",
    "Channel",
    "SignalingRelay",
]
