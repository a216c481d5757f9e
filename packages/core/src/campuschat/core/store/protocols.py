"""Store Protocol 接口定义

定义 UserStore、RoomStore、MessageStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from datetime import datetime
from typing import Protocol

from ..models.message import ChatMessage
from ..models.user import Room, UserInfo


class UserStore(Protocol):
    """凭证库接口"""

    async def create_user(self, user: UserInfo, token: str) -> None:
        """创建用户记录"""
        ...

    async def get_user(self, user_id: str) -> UserInfo | None:
        """根据 user_id 查询用户"""
        ...

    async def get_user_by_token(self, token: str | None) -> UserInfo | None:
        """根据 bearer token 查询用户"""
        ...


class RoomStore(Protocol):
    """房间与成员关系接口"""

    async def create_room(self, room: Room) -> None:
        """创建房间"""
        ...

    async def get_room(self, room_id: str) -> Room | None:
        """查询房间"""
        ...

    async def add_member(self, room_id: str, user_id: str) -> None:
        """添加成员"""
        ...

    async def remove_member(self, room_id: str, user_id: str) -> None:
        """移除成员"""
        ...

    async def is_member(self, room_id: str, user_id: str) -> bool:
        """授权检查：用户是否为房间成员"""
        ...

    async def touch_last_message(
        self, room_id: str, message_id: str, message_at: str
    ) -> None:
        """更新房间最新消息指针"""
        ...


class MessageStore(Protocol):
    """消息持久化接口

    消息表 append-only：只允许插入，不允许更新。
    """

    async def append_message(self, message: ChatMessage) -> None:
        """追加消息"""
        ...

    async def get_room_tail(self, room_id: str) -> tuple[int, datetime | None]:
        """获取房间最后一条消息的 (room_seq, created_at)"""
        ...

    async def get_message(self, message_id: str) -> ChatMessage | None:
        """查询单条消息"""
        ...

    async def list_messages(
        self,
        room_id: str,
        limit: int,
        before_seq: int | None = None,
    ) -> list[ChatMessage]:
        """查询房间历史消息的一页"""
        ...

    async def mark_read(self, message_id: str, user_id: str, read_at: str) -> bool:
        """记录已读回执，首次已读返回 True"""
        ...
