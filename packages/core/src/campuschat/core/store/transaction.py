"""消息 + 房间指针原子事务封装

在同一 SQLite 事务内原子提交消息写入和房间 last_message 指针更新。
"""

import aiosqlite

from ..models.message import ChatMessage
from .protocols import MessageStore, RoomStore


async def append_message_and_touch_room(
    conn: aiosqlite.Connection,
    message_store: MessageStore,
    room_store: RoomStore,
    message: ChatMessage,
) -> None:
    """在同一事务内写入消息并更新房间最新消息指针

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        message_store: MessageStore 实例
        room_store: RoomStore 实例
        message: 已分配 id / seq / created_at 的权威消息

    Raises:
        Exception: 如果事务提交失败，自动回滚
    """
    try:
        await message_store.append_message(message)
        await room_store.touch_last_message(
            message.room_id,
            message.id,
            message.created_at.isoformat(),
        )
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise


async def record_read_receipt(
    conn: aiosqlite.Connection,
    message_store: MessageStore,
    message_id: str,
    user_id: str,
    read_at: str,
) -> bool:
    """写入已读回执并提交

    Returns:
        True 如果是首次已读
    """
    try:
        inserted = await message_store.mark_read(message_id, user_id, read_at)
        await conn.commit()
        return inserted
    except Exception:
        await conn.rollback()
        raise
