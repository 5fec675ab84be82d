"""룸 레지스트리 모듈.

연결(connection) ID → (룸, 표시 이름) 매핑을 관리합니다.
모든 연결 핸들러가 공유하는 유일한 가변 상태이므로 모든 읽기/쓰기는
``asyncio.Lock`` 으로 직렬화되며, 내부 맵은 외부에 노출되지 않습니다.

룸 존재 규칙:
    룸은 별도 객체로 저장되지 않습니다. 멤버가 하나 이상인 룸만 존재하며,
    첫 입장 시 암묵적으로 생성되고 마지막 멤버가 나가면 사라집니다.

Examples:
    >>> registry = RoomRegistry()
    >>> await registry.join("conn-1", "r1", "alice")
    >>> await registry.members_of("r1")
    {'alice'}
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RosterEntry:
    """룸에 입장한 연결 하나를 나타내는 레코드.

    Attributes:
        connection_id (str): 전송 세션의 고유 식별자
        room_id (str): 입장한 룸 ID
        display_name (str): 사용자가 설정한 표시 이름
    """
    connection_id: str
    room_id: str
    display_name: str


class RoomRegistry:
    """연결별 룸 멤버십을 추적하는 레지스트리.

    Thread Safety:
        - 단일 이벤트 루프에서 여러 연결 핸들러가 동시에 접근
        - 모든 연산은 내부 lock 구간 안에서만 상태를 읽고 씀
    """

    def __init__(self):
        # connection_id -> RosterEntry
        self._entries: Dict[str, RosterEntry] = {}
        self._lock = asyncio.Lock()

    async def join(self, connection_id: str, room_id: str, display_name: str) -> Optional[RosterEntry]:
        """연결을 룸에 등록하거나 기존 항목을 덮어씁니다.

        같은 연결로 다시 입장하면 룸/이름이 교체되며 항목이 중복되지 않습니다.
        한 번의 lock 구간에서 교체되므로 두 룸에 동시에 속한 상태는 관찰되지 않습니다.

        Args:
            connection_id: 연결 ID
            room_id: 입장할 룸 ID
            display_name: 표시 이름

        Returns:
            Optional[RosterEntry]: 덮어쓴 이전 항목. 처음 입장이면 None
        """
        async with self._lock:
            previous = self._entries.get(connection_id)
            self._entries[connection_id] = RosterEntry(connection_id, room_id, display_name)
            count = self._count(room_id)

        logger.info(f"'{display_name}' ({connection_id[:8]}) joined room '{room_id}'. "
                    f"Room has {count} members")
        return previous

    async def lookup(self, connection_id: str) -> Optional[RosterEntry]:
        """연결의 현재 항목을 반환합니다. 입장 전이면 None."""
        async with self._lock:
            return self._entries.get(connection_id)

    async def members_of(self, room_id: str, excluding: Optional[str] = None) -> Set[str]:
        """룸 멤버의 표시 이름 집합을 반환합니다.

        Args:
            room_id: 조회할 룸 ID
            excluding: 결과에서 제외할 연결 ID

        Returns:
            Set[str]: 표시 이름 집합. 룸이 없으면 빈 집합
        """
        async with self._lock:
            return {
                entry.display_name
                for entry in self._entries.values()
                if entry.room_id == room_id and entry.connection_id != excluding
            }

    async def peers_of(self, room_id: str, excluding: Optional[str] = None) -> List[str]:
        """룸 멤버의 연결 ID 리스트를 반환합니다 (릴레이 대상 계산용)."""
        async with self._lock:
            return [
                entry.connection_id
                for entry in self._entries.values()
                if entry.room_id == room_id and entry.connection_id != excluding
            ]

    async def remove(self, connection_id: str) -> Optional[RosterEntry]:
        """연결 항목을 원자적으로 삭제합니다.

        입장하지 않은 연결이나 이미 삭제된 연결이면 아무 일도 하지 않습니다.
        동시에 여러 번 호출되어도 항목을 돌려받는 호출은 하나뿐입니다.

        Returns:
            Optional[RosterEntry]: 삭제된 항목. 없었으면 None
        """
        async with self._lock:
            entry = self._entries.pop(connection_id, None)
            count = self._count(entry.room_id) if entry else 0

        if entry:
            if count == 0:
                logger.info(f"Room '{entry.room_id}' is now empty")
            else:
                logger.info(f"'{entry.display_name}' ({connection_id[:8]}) left room "
                            f"'{entry.room_id}'. Room has {count} members")
        return entry

    async def rooms(self) -> Dict[str, List[str]]:
        """현재 존재하는 룸과 멤버 이름 스냅샷을 반환합니다."""
        async with self._lock:
            snapshot: Dict[str, List[str]] = {}
            for entry in self._entries.values():
                snapshot.setdefault(entry.room_id, []).append(entry.display_name)
            return snapshot

    async def connection_count(self) -> int:
        """룸에 입장한 연결 수."""
        async with self._lock:
            return len(self._entries)

    def _count(self, room_id: str) -> int:
        return sum(1 for entry in self._entries.values() if entry.room_id == room_id)
