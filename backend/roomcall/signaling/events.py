"""시그널링 이벤트 이름과 메시지 envelope.

서버와 클라이언트가 주고받는 모든 프레임은 다음 JSON 형식입니다::

    {"type": "<event-name>", "data": {...}}
"""

from typing import Any, Dict, Optional

# 클라이언트 → 서버
JOIN_ROOM = "join-room"
SEND_MESSAGE = "send-message"
CALL_USER = "call-user"
ACCEPT_CALL = "accept-call"
REJECT_CALL = "reject-call"
END_CALL = "end-call"

# 양방향 (negotiation)
OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "ice-candidate"

# 서버 → 클라이언트
EXISTING_USERS = "existing-users"
USER_CONNECTED = "user-connected"
USER_DISCONNECTED = "user-disconnected"
RECEIVE_MESSAGE = "receive-message"
INCOMING_CALL = "incoming-call"
CALL_ACCEPTED = "call-accepted"
CALL_REJECTED = "call-rejected"
CALL_ENDED = "call-ended"
ERROR = "error"

NEGOTIATION_EVENTS = frozenset({OFFER, ANSWER, ICE_CANDIDATE})

CALL_TYPE_AUDIO = "audio"
CALL_TYPE_VIDEO = "video"
CALL_TYPES = (CALL_TYPE_AUDIO, CALL_TYPE_VIDEO)


def envelope(event: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """이벤트 이름과 payload를 전송용 dict로 묶습니다."""
    return {"type": event, "data": data or {}}
