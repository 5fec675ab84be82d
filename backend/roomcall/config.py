"""roomcall 설정 모듈.

서버, ICE(STUN/TURN), 미디어 장치, 클라이언트 접속 정보 등
환경변수 기반 설정을 제공합니다.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent / "config" / ".env"
load_dotenv(_env_path)


# ============================================================
# 서버 설정
# ============================================================

@dataclass(frozen=True)
class ServerConfig:
    """시그널링 서버 설정."""

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    ENV: str = os.getenv("ENV", "development")

    # 로그 설정
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")
    LOG_RETENTION_DAYS: int = int(os.getenv("LOG_RETENTION_DAYS", "60"))

    # 콤마로 구분된 허용 origin 목록
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # 연결당 송신 대기열 크기 (가득 차면 이벤트 드랍)
    OUTBOX_MAX_SIZE: int = int(os.getenv("OUTBOX_MAX_SIZE", "256"))

    @property
    def cors_origin_list(self) -> list:
        """CORS 허용 origin 리스트."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# ============================================================
# ICE Server 설정
# ============================================================

@dataclass(frozen=True)
class ICEServerConfig:
    """ICE 서버 설정."""

    # TURN 서버
    TURN_SERVER_URL: Optional[str] = os.getenv("TURN_SERVER_URL")
    TURN_USERNAME: Optional[str] = os.getenv("TURN_USERNAME")
    TURN_CREDENTIAL: Optional[str] = os.getenv("TURN_CREDENTIAL")

    # STUN 서버
    STUN_SERVER_URL: Optional[str] = os.getenv("STUN_SERVER_URL")

    # 기본 공개 STUN 서버 (fallback)
    DEFAULT_STUN_SERVERS: Tuple[str, ...] = (
        "stun:stun.l.google.com:19302",
        "stun:stun1.l.google.com:19302",
    )

    @property
    def has_turn_server(self) -> bool:
        """TURN 서버 설정 완료 여부."""
        return all([self.TURN_SERVER_URL, self.TURN_USERNAME, self.TURN_CREDENTIAL])

    def as_dicts(self) -> list:
        """브라우저 RTCConfiguration.iceServers 형식의 리스트를 반환합니다."""
        servers = []
        if self.STUN_SERVER_URL:
            servers.append({"urls": self.STUN_SERVER_URL})
        for stun_url in self.DEFAULT_STUN_SERVERS:
            servers.append({"urls": stun_url})
        if self.has_turn_server:
            servers.append({
                "urls": self.TURN_SERVER_URL,
                "username": self.TURN_USERNAME,
                "credential": self.TURN_CREDENTIAL,
            })
        return servers


# ============================================================
# 로컬 미디어 장치 설정
# ============================================================

@dataclass(frozen=True)
class MediaConfig:
    """마이크/카메라 캡처 설정.

    aiortc MediaPlayer(ffmpeg) 입력 포맷과 장치 이름입니다.
    Linux 기본값: pulse + v4l2, macOS: avfoundation, Windows: dshow.
    """

    AUDIO_FORMAT: str = os.getenv("MEDIA_AUDIO_FORMAT", "pulse")
    AUDIO_DEVICE: str = os.getenv("MEDIA_AUDIO_DEVICE", "default")
    VIDEO_FORMAT: str = os.getenv("MEDIA_VIDEO_FORMAT", "v4l2")
    VIDEO_DEVICE: str = os.getenv("MEDIA_VIDEO_DEVICE", "/dev/video0")
    VIDEO_SIZE: str = os.getenv("MEDIA_VIDEO_SIZE", "640x480")
    FRAMERATE: str = os.getenv("MEDIA_FRAMERATE", "30")


# ============================================================
# 클라이언트 설정
# ============================================================

@dataclass(frozen=True)
class ClientConfig:
    """시그널링 클라이언트 설정."""

    SIGNALING_URL: str = os.getenv("SIGNALING_URL", "ws://localhost:8000/ws")


# ============================================================
# 싱글톤 인스턴스
# ============================================================

server_config = ServerConfig()
ice_config = ICEServerConfig()
media_config = MediaConfig()
client_config = ClientConfig()


logger.debug(f"[Config] .env 경로: {_env_path} (존재: {_env_path.exists()})")
logger.debug(f"[Config] TURN 서버 설정 완료: {ice_config.has_turn_server}")
