"""연결 송신 허브 모듈.

WebSocket 연결마다 bounded outbox 큐와 전용 writer 태스크를 두어
"연결로 보내기" 기본 연산을 fire-and-forget으로 제공합니다.
느린 수신자가 송신자나 같은 룸의 다른 멤버를 막지 않습니다.

Note:
    - 허브의 모든 연산은 await 없이 끝나므로 이벤트 루프 안에서 원자적임
    - 큐가 가득 차면 해당 이벤트는 버려지고 경고 로그만 남음
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..config import server_config
from .events import envelope

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]


class Channel:
    """연결 하나의 송신 대기열.

    Attributes:
        connection_id (str): 연결 ID
        queue (asyncio.Queue): 전송 대기 메시지 큐
    """

    def __init__(self, connection_id: str, send: SendCallable, max_size: int):
        self.connection_id = connection_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_size)
        self._send = send
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        """writer 태스크를 시작합니다."""
        if self._task is None:
            self._task = asyncio.create_task(self._pump())

    def offer(self, message: dict) -> bool:
        """메시지를 큐에 넣습니다. 가득 찼으면 False."""
        try:
            self.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            logger.warning(f"연결 {self.connection_id[:8]} 송신 큐 가득 참, "
                           f"'{message.get('type')}' 이벤트 드랍")
            return False

    async def close(self) -> None:
        """writer 태스크를 취소합니다."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _pump(self) -> None:
        while True:
            message = await self.queue.get()
            try:
                await self._send(message)
            except Exception as e:
                # 연결이 닫히는 중이면 수신 루프가 정리를 담당
                logger.warning(f"연결 {self.connection_id[:8]} 전송 실패, writer 중지: {e}")
                return


class ConnectionHub:
    """연결 ID → Channel 매핑."""

    def __init__(self, max_size: int = server_config.OUTBOX_MAX_SIZE):
        self._channels: Dict[str, Channel] = {}
        self._max_size = max_size

    def register(self, connection_id: str, send: SendCallable) -> Channel:
        """새 연결의 Channel을 만들고 writer를 시작합니다."""
        channel = Channel(connection_id, send, self._max_size)
        self._channels[connection_id] = channel
        channel.start()
        logger.debug(f"연결 {connection_id[:8]} 채널 등록 (총 {len(self._channels)}개)")
        return channel

    async def unregister(self, connection_id: str) -> None:
        """Channel을 제거하고 writer를 종료합니다. 없으면 무시."""
        channel = self._channels.pop(connection_id, None)
        if channel is not None:
            await channel.close()
            logger.debug(f"연결 {connection_id[:8]} 채널 해제")

    def send(self, connection_id: str, event: str, data: Optional[Dict[str, Any]] = None) -> bool:
        """연결 하나에 이벤트를 보냅니다 (응답/확인 없음).

        Returns:
            bool: 큐에 들어갔으면 True. 연결이 없거나 큐가 가득 차면 False
        """
        channel = self._channels.get(connection_id)
        if channel is None:
            logger.debug(f"연결 {connection_id[:8]} 없음, '{event}' 이벤트 무시")
            return False
        return channel.offer(envelope(event, data))

    def __len__(self) -> int:
        return len(self._channels)

    async def close_all(self) -> None:
        """모든 Channel을 종료합니다 (서버 종료 시)."""
        for connection_id in list(self._channels.keys()):
            await self.unregister(connection_id)
