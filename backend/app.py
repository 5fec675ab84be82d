"""FastAPI Room Chat & Call Signaling Server.

이 모듈은 룸 기반 채팅과 1:1 WebRTC 통화를 위한 시그널링 서버를 제공합니다.
서버는 미디어를 중계하지 않으며, 같은 룸의 참가자 사이에서
채팅/통화 제어/negotiation 이벤트만 릴레이합니다.

주요 기능:
    - 룸 입장과 참가자 입/퇴장 알림
    - 룸 채팅 메시지 릴레이 (서버 타임스탬프 부여)
    - 통화 요청/수락/거절/종료 이벤트 릴레이
    - WebRTC offer/answer 및 ICE candidate 릴레이
    - CORS 설정을 통한 크로스 오리진 요청 지원

Architecture:
    - RoomRegistry: 연결 → (룸, 표시 이름) 공유 상태
    - ConnectionHub: 연결별 송신 큐 (fire-and-forget)
    - SignalingRelay: 수신 이벤트 → 룸 멤버 재전송
    - WebSocket: /ws 시그널링 엔드포인트
"""
import logging
from contextlib import asynccontextmanager
from typing import Dict, List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from roomcall.config import ice_config, server_config
from roomcall.logging_config import cleanup_old_logs, setup_logging
from roomcall.signaling import ConnectionHub, RoomRegistry, SignalingRelay
from routes import health_router, signaling_router, init_signaling_managers

# 로그 설정
log_filename = setup_logging()
logger = logging.getLogger(__name__)
logger.info(f"로그 파일: {log_filename} (레벨: {server_config.LOG_LEVEL}, 환경: {server_config.ENV})")


# 글로벌 인스턴스
registry = RoomRegistry()
hub = ConnectionHub()
relay = SignalingRelay(registry, hub)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI 앱의 생명주기를 관리하는 컨텍스트 매니저.

    Args:
        app (FastAPI): FastAPI 애플리케이션 인스턴스

    Yields:
        None: 앱이 실행되는 동안 제어를 반환

    Note:
        - 시작: 오래된 로그 정리
        - 종료: 모든 연결의 송신 태스크 정리
    """
    logger.info("룸 시그널링 서버 시작 중...")

    deleted_logs = cleanup_old_logs()
    if deleted_logs > 0:
        logger.info(f"오래된 로그 파일 {deleted_logs}개 정리 완료 "
                    f"({server_config.LOG_RETENTION_DAYS}일 이상)")

    yield

    logger.info("서버 종료 중...")
    await hub.close_all()


app = FastAPI(title="Room Chat & Call Signaling Server", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=server_config.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 라우터 등록
app.include_router(health_router)
app.include_router(signaling_router)

# WebSocket 시그널링 라우터에 인스턴스 전달
init_signaling_managers(relay, hub)


class RoomInfo(BaseModel):
    """활성 룸 정보."""
    room_id: str
    member_count: int
    members: List[str]


class RoomListResponse(BaseModel):
    """룸 목록 응답."""
    rooms: List[RoomInfo]


@app.get("/")
async def root():
    """서버 상태 확인 엔드포인트 (Health check).

    Returns:
        dict: 서버 상태 정보를 포함하는 딕셔너리
            - status (str): 서버 상태
            - service (str): 서비스 이름
    """
    return {"status": "ok", "service": "Room Chat & Call Signaling Server"}


@app.get("/api/rooms", response_model=RoomListResponse)
async def get_rooms_api():
    """활성화된 모든 룸의 목록을 조회합니다.

    멤버가 한 명 이상인 룸만 존재하므로 빈 룸은 목록에 나오지 않습니다.

    Returns:
        RoomListResponse: 룸 ID, 멤버 수, 멤버 이름 목록
    """
    snapshot = await registry.rooms()
    return RoomListResponse(rooms=[
        RoomInfo(room_id=room_id, member_count=len(members), members=sorted(members))
        for room_id, members in sorted(snapshot.items())
    ])


@app.get("/api/ice-servers")
async def get_ice_servers() -> List[Dict[str, str]]:
    """브라우저 클라이언트용 ICE 서버 설정을 제공합니다.

    TURN credentials는 Backend 환경 변수에서만 관리하고 이 엔드포인트로 전달합니다.

    Returns:
        list: RTCConfiguration.iceServers 형식의 STUN/TURN 목록

    Examples:
        [
            {"urls": "stun:stun.l.google.com:19302"},
            {"urls": "turn:turn.example.com:3478", "username": "u", "credential": "p"}
        ]
    """
    servers = ice_config.as_dicts()
    if ice_config.has_turn_server:
        logger.info("ICE 서버 제공: STUN + TURN")
    else:
        logger.info("ICE 서버 제공: STUN만 (TURN 미설정)")
    return servers


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=server_config.HOST, port=server_config.PORT,
                log_level=server_config.LOG_LEVEL.lower())
