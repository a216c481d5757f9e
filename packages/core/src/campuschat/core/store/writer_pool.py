"""WriterPool -- 写事务专用的 aiosqlite 连接池

每个写事务独占一个连接，不同房间的写入互不等待应用层锁；
同一房间的写入由调用方（Broker 房间锁）串行化。
SQLite 文件层面仍只允许一个写事务提交，由 busy_timeout 排队。
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite
import structlog

from .message_store import SqliteMessageStore
from .room_store import SqliteRoomStore

log = structlog.get_logger()

# 空闲连接保留上限
DEFAULT_MAX_IDLE = 4


class Writer:
    """绑定到单个连接的写入 Store 组合"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.message_store = SqliteMessageStore(conn)
        self.room_store = SqliteRoomStore(conn)


class WriterPool:
    """按需创建、空闲复用的写连接池

    Args:
        db_path: SQLite 数据库文件路径（与读连接相同，需已 init_db）
        max_idle: 归还后保留的空闲连接数上限
    """

    def __init__(self, db_path: str, max_idle: int = DEFAULT_MAX_IDLE) -> None:
        self._db_path = db_path
        self._max_idle = max_idle
        self._idle: list[Writer] = []
        self._in_use = 0
        self._closed = False

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def idle(self) -> int:
        return len(self._idle)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Writer]:
        """借出一个写连接；异常退出时丢弃该连接"""
        if self._closed:
            raise RuntimeError("writer pool is closed")

        writer = self._idle.pop() if self._idle else await self._open()
        self._in_use += 1
        try:
            yield writer
        except BaseException:
            self._in_use -= 1
            await writer.conn.close()
            raise
        self._in_use -= 1
        if self._closed or len(self._idle) >= self._max_idle:
            await writer.conn.close()
        else:
            self._idle.append(writer)

    async def close(self) -> None:
        """关闭全部空闲连接；借出中的连接在归还时关闭"""
        self._closed = True
        idle, self._idle = self._idle, []
        for writer in idle:
            await writer.conn.close()

    async def _open(self) -> Writer:
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys = ON;")
        await conn.execute("PRAGMA busy_timeout = 5000;")
        log.debug("writer_connection_opened", db_path=self._db_path)
        return Writer(conn)
