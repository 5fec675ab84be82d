"""통화 관련 예외."""


class CallError(Exception):
    """통화 처리 중 발생한 오류의 기본 클래스."""


class CallStateError(CallError):
    """현재 통화 단계에서 허용되지 않는 동작."""


class CallAlreadyActiveError(CallStateError):
    """이미 통화가 진행(또는 대기) 중일 때 새 통화를 시작하려는 경우."""


class MediaAcquisitionError(CallError):
    """마이크/카메라 획득 실패 (권한 거부, 장치 없음 등)."""


class NegotiationError(CallError):
    """offer/answer 생성 또는 description 설정 실패."""
