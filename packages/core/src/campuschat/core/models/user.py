"""User / Room Domain Model"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import RoomType, UserRole
from .message import SenderDisplay


class UserInfo(BaseModel):
    """已认证用户"""

    user_id: str = Field(description="用户 ID")
    name: str = Field(description="显示名")
    role: UserRole = Field(default=UserRole.STUDENT, description="角色")

    def display(self) -> SenderDisplay:
        """发送时刻的展示信息快照"""
        return SenderDisplay(name=self.name, role=self.role)


class Room(BaseModel):
    """聊天室 -- 成员关系由 room_members 表维护"""

    room_id: str = Field(description="房间 ID")
    name: str = Field(description="房间名")
    type: RoomType = Field(default=RoomType.GLOBAL, description="房间类型")
    created_at: datetime = Field(description="创建时间")
    last_message_id: str | None = Field(default=None, description="最新消息 ID")
    last_message_at: datetime | None = Field(default=None, description="最新消息时间")
