"""테스트 공용 fake 객체와 fixture.

실제 장치/네트워크 없이 통화 흐름을 검증하기 위해
aiortc RTCPeerConnection과 같은 이벤트 표면을 가진 fake를 제공합니다.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest
from aiortc import MediaStreamTrack, RTCSessionDescription
from pyee.asyncio import AsyncIOEventEmitter

from roomcall.call.errors import MediaAcquisitionError
from roomcall.call.media import LocalMedia, MediaProvider
from roomcall.signaling import ConnectionHub


VALID_CANDIDATE = {
    "candidate": "candidate:1 1 udp 2130706431 192.168.1.2 50000 typ host",
    "sdpMid": "0",
    "sdpMLineIndex": 0,
}


class FakeTrack(MediaStreamTrack):
    """recv()가 미리 정한 프레임을 돌려주는 로컬 트랙."""

    def __init__(self, kind: str, frame: Any = None):
        super().__init__()
        self.kind = kind
        self.frame = frame

    async def recv(self):
        return self.frame


class FakePeerConnection(AsyncIOEventEmitter):
    """RTCPeerConnection 대역.

    Attributes:
        gate (Optional[asyncio.Event]): 설정되면 setRemoteDescription이 이 이벤트를 기다림
        fail_remote (bool): setRemoteDescription 실패 여부
        fail_candidate (bool): addIceCandidate 실패 여부
    """

    def __init__(self):
        super().__init__()
        self.localDescription: Optional[RTCSessionDescription] = None
        self.remoteDescription: Optional[RTCSessionDescription] = None
        self.connectionState = "new"
        self.tracks: List[MediaStreamTrack] = []
        self.candidates: list = []
        self.closed = False
        self.gate: Optional[asyncio.Event] = None
        self.fail_remote = False
        self.fail_candidate = False

    def addTrack(self, track):
        self.tracks.append(track)

    async def createOffer(self):
        return RTCSessionDescription(sdp="v=0 offer", type="offer")

    async def createAnswer(self):
        if self.remoteDescription is None:
            raise RuntimeError("remote description 없음")
        return RTCSessionDescription(sdp="v=0 answer", type="answer")

    async def setLocalDescription(self, description):
        self.localDescription = description

    async def setRemoteDescription(self, description):
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_remote:
            raise ValueError("잘못된 SDP")
        self.remoteDescription = description

    async def addIceCandidate(self, candidate):
        if self.fail_candidate:
            raise ValueError("candidate 거부")
        self.candidates.append(candidate)

    async def close(self):
        self.closed = True
        self.connectionState = "closed"


class FakeMediaProvider(MediaProvider):
    """FakeTrack으로 LocalMedia를 만드는 미디어 공급자.

    Attributes:
        fail (bool): True면 MediaAcquisitionError
        gate (Optional[asyncio.Event]): 설정되면 획득 완료 전에 이 이벤트를 기다림
        calls (List[bool]): acquire 호출 시 video 인자 기록
        acquired (List[LocalMedia]): 만들어 준 미디어
    """

    def __init__(self, fail: bool = False, gate: Optional[asyncio.Event] = None):
        self.fail = fail
        self.gate = gate
        self.calls: List[bool] = []
        self.acquired: List[LocalMedia] = []

    async def acquire(self, video: bool) -> LocalMedia:
        self.calls.append(video)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise MediaAcquisitionError("권한 거부")
        tracks = [FakeTrack("audio")]
        if video:
            tracks.append(FakeTrack("video"))
        media = LocalMedia(tracks)
        self.acquired.append(media)
        return media


class Outbox:
    """클라이언트가 서버로 보낸 이벤트 기록."""

    def __init__(self):
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    async def send(self, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.sent.append((event, data or {}))

    def named(self, event: str) -> List[Dict[str, Any]]:
        return [data for name, data in self.sent if name == event]

    @property
    def events(self) -> List[str]:
        return [name for name, _ in self.sent]


class RecordingHub(ConnectionHub):
    """큐/writer 없이 보낸 이벤트를 기록하는 허브."""

    def __init__(self):
        super().__init__()
        self.delivered: List[Tuple[str, str, Dict[str, Any]]] = []

    def send(self, connection_id, event, data=None):
        self.delivered.append((connection_id, event, data or {}))
        return True

    def to(self, connection_id: str) -> List[Tuple[str, Dict[str, Any]]]:
        return [(event, data) for cid, event, data in self.delivered if cid == connection_id]


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def media_provider():
    return FakeMediaProvider()
