"""로컬 미디어(마이크/카메라) 모듈.

통화에 사용할 로컬 트랙의 획득과 해제, 음소거/화면 끄기를 담당합니다.

Classes:
    SwitchableTrack: 켜고 끌 수 있는 로컬 트랙 (꺼지면 무음/검은 화면 전송)
    LocalMedia: 한 통화에서 획득한 트랙 묶음
    MediaProvider: 미디어 획득 인터페이스
    DeviceMediaProvider: aiortc MediaPlayer로 실제 장치를 여는 구현
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaPlayer
from av import AudioFrame, VideoFrame

from ..config import MediaConfig, media_config
from .errors import MediaAcquisitionError

logger = logging.getLogger(__name__)


class SwitchableTrack(MediaStreamTrack):
    """원본 트랙을 감싸 활성/비활성을 전환할 수 있는 트랙.

    비활성 상태에서도 프레임 타이밍은 원본을 따르며, 내용만 무음(오디오)
    또는 검은 화면(비디오)으로 바뀝니다.

    Attributes:
        kind (str): 원본 트랙 종류 ("audio" 또는 "video")
        source (MediaStreamTrack): 원본 트랙
        enabled (bool): False면 빈 프레임 전송

    Examples:
        >>> track = SwitchableTrack(player.audio)
        >>> track.enabled = False  # 음소거
    """

    def __init__(self, source: MediaStreamTrack):
        super().__init__()
        self.kind = source.kind
        self.source = source
        self.enabled = True

    async def recv(self):
        frame = await self.source.recv()
        if self.enabled:
            return frame
        if isinstance(frame, AudioFrame):
            return _silence_like(frame)
        if isinstance(frame, VideoFrame):
            return _black_like(frame)
        return frame

    def stop(self) -> None:
        super().stop()
        self.source.stop()


def _silence_like(frame: AudioFrame) -> AudioFrame:
    silent = AudioFrame(format=frame.format.name, layout=frame.layout.name, samples=frame.samples)
    for plane in silent.planes:
        plane.update(bytes(plane.buffer_size))
    silent.pts = frame.pts
    silent.sample_rate = frame.sample_rate
    if frame.time_base is not None:
        silent.time_base = frame.time_base
    return silent


def _black_like(frame: VideoFrame) -> VideoFrame:
    black = VideoFrame(width=frame.width, height=frame.height, format="yuv420p")
    # Y=16, U=V=128: limited range black
    for index, plane in enumerate(black.planes):
        plane.update(bytes([16 if index == 0 else 128]) * plane.buffer_size)
    black.pts = frame.pts
    if frame.time_base is not None:
        black.time_base = frame.time_base
    return black


class LocalMedia:
    """한 통화 세션이 보유한 로컬 트랙 묶음.

    stop() 이후에는 보유 트랙 수가 0입니다.
    """

    def __init__(self, tracks: Iterable[MediaStreamTrack]):
        self._tracks: List[SwitchableTrack] = [
            track if isinstance(track, SwitchableTrack) else SwitchableTrack(track)
            for track in tracks
        ]

    @property
    def tracks(self) -> List[SwitchableTrack]:
        return list(self._tracks)

    @property
    def track_count(self) -> int:
        return len(self._tracks)

    def track_of(self, kind: str) -> Optional[SwitchableTrack]:
        """종류별 첫 트랙. 없으면 None."""
        return next((track for track in self._tracks if track.kind == kind), None)

    def toggle(self, kind: str) -> Optional[bool]:
        """해당 종류 트랙의 활성 상태를 뒤집습니다.

        Returns:
            Optional[bool]: 바뀐 활성 상태. 트랙이 없으면 None
        """
        track = self.track_of(kind)
        if track is None:
            return None
        track.enabled = not track.enabled
        logger.info(f"로컬 {kind} 트랙 {'활성' if track.enabled else '비활성'}")
        return track.enabled

    def stop(self) -> None:
        """모든 트랙을 중지하고 해제합니다."""
        for track in self._tracks:
            track.stop()
        if self._tracks:
            logger.info(f"로컬 트랙 {len(self._tracks)}개 해제")
        self._tracks = []


class MediaProvider(ABC):
    """로컬 미디어 획득 인터페이스.

    구현체는 오디오를 항상, 비디오는 ``video=True`` 일 때만 획득해야 하며
    실패 시 MediaAcquisitionError를 발생시켜야 합니다.
    """

    @abstractmethod
    async def acquire(self, video: bool) -> LocalMedia:
        """오디오(와 video=True면 비디오) 트랙을 획득합니다."""


class DeviceMediaProvider(MediaProvider):
    """aiortc MediaPlayer(ffmpeg)로 마이크와 카메라를 여는 구현.

    장치 열기는 블로킹 호출이므로 executor에서 실행합니다.
    """

    def __init__(self, config: MediaConfig = media_config):
        self.config = config

    async def acquire(self, video: bool) -> LocalMedia:
        loop = asyncio.get_running_loop()

        try:
            audio_player = await loop.run_in_executor(None, self._open_audio)
        except Exception as e:
            raise MediaAcquisitionError(f"마이크를 열 수 없습니다: {e}") from e
        if audio_player.audio is None:
            raise MediaAcquisitionError("마이크 장치에 오디오 트랙이 없습니다")

        tracks = [audio_player.audio]
        if video:
            try:
                video_player = await loop.run_in_executor(None, self._open_video)
            except Exception as e:
                audio_player.audio.stop()
                raise MediaAcquisitionError(f"카메라를 열 수 없습니다: {e}") from e
            if video_player.video is None:
                audio_player.audio.stop()
                raise MediaAcquisitionError("카메라 장치에 비디오 트랙이 없습니다")
            tracks.append(video_player.video)

        logger.info(f"로컬 미디어 획득 완료 (video={video})")
        return LocalMedia(tracks)

    def _open_audio(self) -> MediaPlayer:
        return MediaPlayer(self.config.AUDIO_DEVICE, format=self.config.AUDIO_FORMAT)

    def _open_video(self) -> MediaPlayer:
        return MediaPlayer(
            self.config.VIDEO_DEVICE,
            format=self.config.VIDEO_FORMAT,
            options={"video_size": self.config.VIDEO_SIZE, "framerate": self.config.FRAMERATE},
        )
