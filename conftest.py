"""全局 pytest 配置 -- 临时 SQLite 数据库与预置用户/房间 fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pytest_asyncio
from campuschat.core.models import Room, RoomType, UserInfo, UserRole
from campuschat.core.store import StoreGroup, create_store_group

# 预置数据：alice / bob 是 r1、r2 成员，carol 只在 r2
SEED_USERS = [
    (UserInfo(user_id="u-alice", name="Alice", role=UserRole.STUDENT), "alice-token"),
    (UserInfo(user_id="u-bob", name="Bob", role=UserRole.FACULTY), "bob-token"),
    (UserInfo(user_id="u-carol", name="Carol", role=UserRole.STUDENT), "carol-token"),
]
SEED_ROOMS = {
    "r1": ["u-alice", "u-bob"],
    "r2": ["u-alice", "u-bob", "u-carol"],
}


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def db_conn(tmp_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """提供已初始化的临时 SQLite 数据库连接"""
    from campuschat.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(tmp_db_path))
    await init_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已写入预置用户与房间的 StoreGroup"""
    group = await create_store_group(str(tmp_db_path))
    now = datetime.now(UTC)
    for user, token in SEED_USERS:
        await group.user_store.create_user(user, token)
    for room_id, members in SEED_ROOMS.items():
        await group.room_store.create_room(
            Room(room_id=room_id, name=room_id.upper(), type=RoomType.CLASS, created_at=now)
        )
        for user_id in members:
            await group.room_store.add_member(room_id, user_id)
    await group.conn.commit()
    yield group
    await group.close()
