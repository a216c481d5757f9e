"""CampusChat Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from .message_store import SqliteMessageStore
from .protocols import MessageStore, RoomStore, UserStore
from .room_store import SqliteRoomStore
from .sqlite_init import init_db
from .transaction import append_message_and_touch_room, record_read_receipt
from .user_store import SqliteUserStore, hash_token
from .writer_pool import Writer, WriterPool


class StoreGroup:
    """Store 实例组 -- 读操作共享同一个数据库连接

    写事务经 writers 借出独立连接，不同房间的写入不共用应用层锁。
    """

    def __init__(self, conn: aiosqlite.Connection, db_path: str) -> None:
        self.conn = conn
        self.db_path = db_path
        self.writers = WriterPool(db_path)
        self.user_store = SqliteUserStore(conn)
        self.room_store = SqliteRoomStore(conn)
        self.message_store = SqliteMessageStore(conn)

    async def close(self) -> None:
        """关闭写连接池与共享连接"""
        await self.writers.close()
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn, db_path=db_path)


__all__ = [
    "StoreGroup",
    "Writer",
    "WriterPool",
    "create_store_group",
    "SqliteUserStore",
    "SqliteRoomStore",
    "SqliteMessageStore",
    "UserStore",
    "RoomStore",
    "MessageStore",
    "init_db",
    "hash_token",
    "append_message_and_touch_room",
    "record_read_receipt",
]
