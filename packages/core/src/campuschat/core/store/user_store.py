"""UserStore SQLite 实现

凭证库：只保存 bearer token 的 SHA-256，不保存明文。
"""

import hashlib
from datetime import UTC, datetime

import aiosqlite

from ..models.enums import UserRole
from ..models.user import UserInfo


def hash_token(token: str) -> str:
    """计算 token 的 SHA-256 十六进制摘要"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SqliteUserStore:
    """UserStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_user(self, user: UserInfo, token: str) -> None:
        """创建用户记录

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO users (user_id, name, role, token_hash, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                user.user_id,
                user.name,
                user.role.value,
                hash_token(token),
                datetime.now(UTC).isoformat(),
            ),
        )

    async def get_user(self, user_id: str) -> UserInfo | None:
        """根据 user_id 查询用户"""
        cursor = await self._conn.execute(
            "SELECT user_id, name, role FROM users WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_user(row) if row else None

    async def get_user_by_token(self, token: str | None) -> UserInfo | None:
        """根据 bearer token 查询用户，token 为空或未知时返回 None"""
        if not token:
            return None
        cursor = await self._conn.execute(
            "SELECT user_id, name, role FROM users WHERE token_hash = ?",
            (hash_token(token),),
        )
        row = await cursor.fetchone()
        return self._row_to_user(row) if row else None

    @staticmethod
    def _row_to_user(row: aiosqlite.Row) -> UserInfo:
        return UserInfo(user_id=row[0], name=row[1], role=UserRole(row[2]))
