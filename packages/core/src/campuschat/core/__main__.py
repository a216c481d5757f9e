"""CLI 入口模块 -- python -m campuschat.core <command>

支持的命令：
  init-db                                初始化数据库
  add-user <user_id> <name> <role>       创建用户并输出 bearer token
  add-room <room_id> <name> [type]       创建房间
  add-member <room_id> <user_id>         添加房间成员
"""

import asyncio
import secrets
import sys
from datetime import UTC, datetime

from .config import get_db_path

_USAGE = """用法: python -m campuschat.core <command>
命令:
  init-db                                初始化数据库
  add-user <user_id> <name> <role>       创建用户并输出 bearer token
  add-room <room_id> <name> [type]       创建房间
  add-member <room_id> <user_id>         添加房间成员"""

# 命令 -> 最少参数个数
_COMMANDS: dict[str, int] = {
    "init-db": 0,
    "add-user": 3,
    "add-room": 2,
    "add-member": 2,
}


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command, args = sys.argv[1], sys.argv[2:]
    if command not in _COMMANDS:
        print(f"未知命令: {command}")
        print(f"可用命令: {', '.join(_COMMANDS)}")
        sys.exit(1)
    if len(args) < _COMMANDS[command]:
        print(_USAGE)
        sys.exit(1)

    asyncio.run(run_command(command, args))


async def run_command(command: str, args: list[str]) -> None:
    """执行单条管理命令"""
    from .models import Room, RoomType, UserInfo, UserRole
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    store_group = await create_store_group(db_path)

    try:
        if command == "add-user":
            user_id, name, role = args[:3]
            token = secrets.token_urlsafe(32)
            await store_group.user_store.create_user(
                UserInfo(user_id=user_id, name=name, role=UserRole(role)),
                token,
            )
            await store_group.conn.commit()
            print(f"用户已创建: {user_id}")
            print(f"token: {token}")
        elif command == "add-room":
            room_id, name = args[:2]
            room_type = RoomType(args[2]) if len(args) > 2 else RoomType.GLOBAL
            await store_group.room_store.create_room(
                Room(
                    room_id=room_id,
                    name=name,
                    type=room_type,
                    created_at=datetime.now(UTC),
                )
            )
            await store_group.conn.commit()
            print(f"房间已创建: {room_id}")
        elif command == "add-member":
            room_id, user_id = args[:2]
            await store_group.room_store.add_member(room_id, user_id)
            await store_group.conn.commit()
            print(f"成员已添加: {user_id} -> {room_id}")
        else:
            print("数据库初始化完成")
    finally:
        await store_group.close()


if __name__ == "__main__":
    main()
