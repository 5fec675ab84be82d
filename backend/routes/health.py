"""Health Check API 라우터.

서비스 상태 확인을 위한 엔드포인트를 제공합니다.
"""

from fastapi import APIRouter

from .signaling import get_hub, get_registry

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check():
    """시그널링 서비스 상태를 확인합니다.

    Returns:
        dict: 서비스 상태와 현재 룸/연결 수
    """
    registry = get_registry()
    hub = get_hub()

    if registry is None or hub is None:
        return {"status": "not_initialized"}

    rooms = await registry.rooms()
    return {
        "status": "ok",
        "rooms": len(rooms),
        "members": await registry.connection_count(),
        "connections": len(hub),
    }
