"""RoomHub -- 内存中房间成员表与事件广播器

每个房间持有一组 socket 连接 ID（sid），支持 join/leave/broadcast。
成员集合只由 join / leave / drop_connection 修改，广播只读取快照。
"""

from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from campuschat.core.models import PresenceEntry, UserInfo

log = structlog.get_logger()

# emit(event, data, to=sid) -- 与 socketio.AsyncServer.emit 签名兼容
Emitter = Callable[..., Awaitable[Any]]


class RoomHub:
    """房间广播器 -- 基于 sid 集合的发布/订阅模式"""

    def __init__(self, emit: Emitter) -> None:
        self._emit = emit
        # room_id -> set of sid
        self._members: dict[str, set[str]] = defaultdict(set)
        # sid -> 已认证用户
        self._connections: dict[str, UserInfo] = {}
        # sid -> 已加入的房间
        self._sid_rooms: dict[str, set[str]] = defaultdict(set)

    def register_connection(self, sid: str, user: UserInfo) -> None:
        """登记新连接"""
        self._connections[sid] = user

    def user_for(self, sid: str) -> UserInfo | None:
        """查询连接对应的用户"""
        return self._connections.get(sid)

    def join(self, room_id: str, sid: str) -> bool:
        """加入房间广播流（幂等）

        Returns:
            True 如果是新加入
        """
        if sid in self._members[room_id]:
            return False
        self._members[room_id].add(sid)
        self._sid_rooms[sid].add(room_id)
        return True

    def leave(self, room_id: str, sid: str) -> bool:
        """离开房间广播流（幂等）

        Returns:
            True 如果之前在房间内
        """
        members = self._members.get(room_id)
        if not members or sid not in members:
            return False
        members.discard(sid)
        if not members:
            del self._members[room_id]
        rooms = self._sid_rooms.get(sid)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                del self._sid_rooms[sid]
        return True

    def drop_connection(self, sid: str) -> UserInfo | None:
        """连接断开：从所有房间移除并注销

        Returns:
            断开连接对应的用户
        """
        for room_id in list(self._sid_rooms.get(sid, set())):
            self.leave(room_id, sid)
        self._sid_rooms.pop(sid, None)
        return self._connections.pop(sid, None)

    def members(self, room_id: str) -> set[str]:
        """房间当前成员快照"""
        return set(self._members.get(room_id, set()))

    def rooms_of(self, sid: str) -> set[str]:
        """连接已加入的房间快照"""
        return set(self._sid_rooms.get(sid, set()))

    def connection_count(self) -> int:
        return len(self._connections)

    def online_users(self) -> list[PresenceEntry]:
        """在线用户列表（同一用户多连接合并计数）"""
        entries: dict[str, PresenceEntry] = {}
        for user in self._connections.values():
            entry = entries.get(user.user_id)
            if entry is None:
                entries[user.user_id] = PresenceEntry(
                    user_id=user.user_id, name=user.name, role=user.role
                )
            else:
                entry.connections += 1
        return sorted(entries.values(), key=lambda e: e.user_id)

    async def send_to(self, sid: str, event: str, data: Any) -> None:
        """仅向单个连接发送事件"""
        await self._emit(event, data, to=sid)

    async def broadcast(
        self,
        room_id: str,
        event: str,
        data: Any,
        skip_sid: str | None = None,
    ) -> int:
        """向房间所有成员广播事件

        Args:
            room_id: 房间 ID
            event: 事件名
            data: 已序列化的 payload
            skip_sid: 不接收此次广播的连接

        Returns:
            实际投递的连接数
        """
        delivered = 0
        for sid in sorted(self.members(room_id)):
            if sid == skip_sid:
                continue
            try:
                await self._emit(event, data, to=sid)
                delivered += 1
            except Exception as e:
                # 单个连接投递失败不影响其他成员
                log.warning(
                    "room_broadcast_delivery_failed",
                    room_id=room_id,
                    sid=sid,
                    error_type=type(e).__name__,
                )
        return delivered

    async def broadcast_all(self, event: str, data: Any) -> None:
        """向所有在线连接广播事件"""
        await self._emit(event, data)
