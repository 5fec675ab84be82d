"""FastAPI 라우터 모듈.

app.py에서 분리된 API 엔드포인트들을 제공합니다.
"""

from .health import router as health_router
from .signaling import router as signaling_router, init_managers as init_signaling_managers

__all__ = [
    "health_router",
    "signaling_router",
    "init_signaling_managers",
]
