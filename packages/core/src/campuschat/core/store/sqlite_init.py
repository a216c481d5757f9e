"""SQLite 数据库初始化

PRAGMA 配置 + 五张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# users 表 DDL（仅保存 token 的 SHA-256）
_USERS_DDL = """
CREATE TABLE IF NOT EXISTS users (
    user_id     TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    role        TEXT NOT NULL DEFAULT 'student',
    token_hash  TEXT NOT NULL,
    created_at  TEXT NOT NULL
);
"""

_USERS_INDEXES = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_token_hash ON users(token_hash);",
]

# rooms 表 DDL
_ROOMS_DDL = """
CREATE TABLE IF NOT EXISTS rooms (
    room_id          TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    type             TEXT NOT NULL DEFAULT 'global',
    created_at       TEXT NOT NULL,
    last_message_id  TEXT,
    last_message_at  TEXT
);
"""

# room_members 表 DDL
_ROOM_MEMBERS_DDL = """
CREATE TABLE IF NOT EXISTS room_members (
    room_id    TEXT NOT NULL,
    user_id    TEXT NOT NULL,
    joined_at  TEXT NOT NULL,

    PRIMARY KEY (room_id, user_id),
    FOREIGN KEY (room_id) REFERENCES rooms(room_id),
    FOREIGN KEY (user_id) REFERENCES users(user_id)
);
"""

_ROOM_MEMBERS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_room_members_user ON room_members(user_id);",
]

# messages 表 DDL（append-only）
_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    message_id   TEXT PRIMARY KEY,
    room_id      TEXT NOT NULL,
    room_seq     INTEGER NOT NULL,
    sender_id    TEXT NOT NULL,
    sender_name  TEXT NOT NULL DEFAULT '',
    sender_role  TEXT NOT NULL DEFAULT 'student',
    body         TEXT,
    attachments  TEXT NOT NULL DEFAULT '[]',
    kind         TEXT NOT NULL DEFAULT 'text',
    created_at   TEXT NOT NULL,

    FOREIGN KEY (room_id) REFERENCES rooms(room_id)
);
"""

_MESSAGES_INDEXES = [
    # 房间内序号唯一约束（确保 room_seq 严格单调递增）
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_messages_room_seq ON messages(room_id, room_seq);",
    "CREATE INDEX IF NOT EXISTS idx_messages_room_created ON messages(room_id, created_at);",
]

# message_reads 表 DDL
_MESSAGE_READS_DDL = """
CREATE TABLE IF NOT EXISTS message_reads (
    message_id  TEXT NOT NULL,
    user_id     TEXT NOT NULL,
    read_at     TEXT NOT NULL,

    PRIMARY KEY (message_id, user_id),
    FOREIGN KEY (message_id) REFERENCES messages(message_id)
);
"""


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_USERS_DDL)
    await conn.execute(_ROOMS_DDL)
    await conn.execute(_ROOM_MEMBERS_DDL)
    await conn.execute(_MESSAGES_DDL)
    await conn.execute(_MESSAGE_READS_DDL)

    # 创建索引
    for idx_sql in _USERS_INDEXES + _ROOM_MEMBERS_INDEXES + _MESSAGES_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
