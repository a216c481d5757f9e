"""MessageStore SQLite 实现

消息表 append-only：只允许插入，不允许更新。
room_seq 同一房间内严格单调递增，created_at 单调不减。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.enums import MessageKind, UserRole
from ..models.message import AttachmentRef, ChatMessage, SenderDisplay

_SELECT_COLUMNS = """
    message_id, room_id, room_seq, sender_id, sender_name, sender_role,
    body, attachments, kind, created_at
"""


class SqliteMessageStore:
    """MessageStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_message(self, message: ChatMessage) -> None:
        """追加消息（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO messages (message_id, room_id, room_seq, sender_id,
                                  sender_name, sender_role, body, attachments,
                                  kind, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.id,
                message.room_id,
                message.seq,
                message.sender_id,
                message.sender_display.name,
                message.sender_display.role.value,
                message.body,
                json.dumps(
                    [a.model_dump(mode="json") for a in message.attachments],
                    ensure_ascii=False,
                ),
                message.kind.value,
                message.created_at.isoformat(),
            ),
        )

    async def get_room_tail(self, room_id: str) -> tuple[int, datetime | None]:
        """获取房间最后一条消息的 (room_seq, created_at)，空房间返回 (0, None)

        在房间锁内调用以确保原子性。
        """
        cursor = await self._conn.execute(
            """
            SELECT room_seq, created_at FROM messages
            WHERE room_id = ?
            ORDER BY room_seq DESC LIMIT 1
            """,
            (room_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return 0, None
        return row[0], datetime.fromisoformat(row[1])

    async def get_message(self, message_id: str) -> ChatMessage | None:
        """根据 message_id 查询消息"""
        cursor = await self._conn.execute(
            f"SELECT {_SELECT_COLUMNS} FROM messages WHERE message_id = ?",
            (message_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_message(row) if row else None

    async def list_messages(
        self,
        room_id: str,
        limit: int,
        before_seq: int | None = None,
    ) -> list[ChatMessage]:
        """查询房间历史消息的一页，结果按 room_seq 正序

        Args:
            room_id: 房间 ID
            limit: 最多返回条数
            before_seq: 仅返回 room_seq 小于该值的消息（向前翻页）
        """
        if before_seq is not None:
            cursor = await self._conn.execute(
                f"""
                SELECT {_SELECT_COLUMNS} FROM messages
                WHERE room_id = ? AND room_seq < ?
                ORDER BY room_seq DESC LIMIT ?
                """,
                (room_id, before_seq, limit),
            )
        else:
            cursor = await self._conn.execute(
                f"""
                SELECT {_SELECT_COLUMNS} FROM messages
                WHERE room_id = ?
                ORDER BY room_seq DESC LIMIT ?
                """,
                (room_id, limit),
            )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in reversed(rows)]

    async def mark_read(self, message_id: str, user_id: str, read_at: str) -> bool:
        """记录已读回执（不自动提交）

        Returns:
            True 如果是首次已读，重复已读返回 False
        """
        cursor = await self._conn.execute(
            """
            INSERT OR IGNORE INTO message_reads (message_id, user_id, read_at)
            VALUES (?, ?, ?)
            """,
            (message_id, user_id, read_at),
        )
        return cursor.rowcount > 0

    async def list_readers(self, message_id: str) -> list[str]:
        """查询已读该消息的 user_id 列表"""
        cursor = await self._conn.execute(
            "SELECT user_id FROM message_reads WHERE message_id = ? ORDER BY read_at",
            (message_id,),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> ChatMessage:
        """将数据库行转换为 ChatMessage 模型"""
        attachments = json.loads(row[7]) if row[7] else []
        return ChatMessage(
            id=row[0],
            room_id=row[1],
            seq=row[2],
            sender_id=row[3],
            sender_display=SenderDisplay(name=row[4], role=UserRole(row[5])),
            body=row[6],
            attachments=[AttachmentRef.model_validate(a) for a in attachments],
            kind=MessageKind(row[8]),
            created_at=datetime.fromisoformat(row[9]),
        )
