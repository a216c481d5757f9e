"""ChatMessage Domain Model

服务端持久化后的权威消息（canonical message），即广播给房间所有成员的形态。
id / created_at / seq 均由 Broker 在落库时分配，客户端时间不参与排序。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import MessageKind, UserRole


class WireModel(BaseModel):
    """线上传输模型基类 -- JSON 使用 camelCase，Python 属性使用 snake_case"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """序列化为可直接 emit 的 JSON dict"""
        return self.model_dump(mode="json", by_alias=True)


class AttachmentRef(WireModel):
    """附件描述 -- 上传已在其他通道完成，这里只引用"""

    name: str = Field(description="文件名")
    size: int = Field(default=0, ge=0, description="文件大小（字节）")
    media_type: str = Field(default="application/octet-stream", description="MIME 类型")
    url: str = Field(description="检索地址")


class SenderDisplay(WireModel):
    """发送者展示信息 -- 发送时刻的快照"""

    name: str = Field(description="显示名")
    role: UserRole = Field(description="角色")


class ChatMessage(WireModel):
    """权威消息

    同一房间内 seq 严格单调递增，created_at 单调不减，
    二者都反映落库完成顺序。
    """

    id: str = Field(description="消息 ID，ULID 格式")
    room_id: str = Field(description="所属房间")
    seq: int = Field(ge=1, description="房间内序号")
    sender_id: str = Field(description="发送者 ID")
    sender_display: SenderDisplay = Field(description="发送者展示信息")
    body: str | None = Field(default=None, description="文本内容")
    attachments: list[AttachmentRef] = Field(default_factory=list, description="附件列表")
    kind: MessageKind = Field(default=MessageKind.TEXT, description="消息类型")
    created_at: datetime = Field(description="服务端落库时间")
