"""RoomStore SQLite 实现

房间与成员关系。is_member 即 Broker 使用的授权检查。
"""

from datetime import UTC, datetime

import aiosqlite

from ..models.enums import RoomType
from ..models.user import Room


class SqliteRoomStore:
    """RoomStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_room(self, room: Room) -> None:
        """创建房间记录（不自动提交）"""
        await self._conn.execute(
            """
            INSERT INTO rooms (room_id, name, type, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                room.room_id,
                room.name,
                room.type.value,
                room.created_at.isoformat(),
            ),
        )

    async def get_room(self, room_id: str) -> Room | None:
        """根据 room_id 查询房间"""
        cursor = await self._conn.execute(
            """
            SELECT room_id, name, type, created_at, last_message_id, last_message_at
            FROM rooms WHERE room_id = ?
            """,
            (room_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Room(
            room_id=row[0],
            name=row[1],
            type=RoomType(row[2]),
            created_at=datetime.fromisoformat(row[3]),
            last_message_id=row[4],
            last_message_at=datetime.fromisoformat(row[5]) if row[5] else None,
        )

    async def add_member(self, room_id: str, user_id: str) -> None:
        """添加成员，已存在时忽略（不自动提交）"""
        await self._conn.execute(
            """
            INSERT OR IGNORE INTO room_members (room_id, user_id, joined_at)
            VALUES (?, ?, ?)
            """,
            (room_id, user_id, datetime.now(UTC).isoformat()),
        )

    async def remove_member(self, room_id: str, user_id: str) -> None:
        """移除成员（不自动提交）"""
        await self._conn.execute(
            "DELETE FROM room_members WHERE room_id = ? AND user_id = ?",
            (room_id, user_id),
        )

    async def is_member(self, room_id: str, user_id: str) -> bool:
        """检查用户是否为房间成员"""
        cursor = await self._conn.execute(
            "SELECT 1 FROM room_members WHERE room_id = ? AND user_id = ? LIMIT 1",
            (room_id, user_id),
        )
        return await cursor.fetchone() is not None

    async def list_members(self, room_id: str) -> list[str]:
        """查询房间成员 user_id 列表"""
        cursor = await self._conn.execute(
            "SELECT user_id FROM room_members WHERE room_id = ? ORDER BY joined_at",
            (room_id,),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def touch_last_message(
        self, room_id: str, message_id: str, message_at: str
    ) -> None:
        """更新房间最新消息指针（不自动提交）"""
        await self._conn.execute(
            """
            UPDATE rooms
            SET last_message_id = ?, last_message_at = ?
            WHERE room_id = ?
            """,
            (message_id, message_at, room_id),
        )
