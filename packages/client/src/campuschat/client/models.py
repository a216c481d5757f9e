"""客户端本地消息模型

本地消息是三种互斥状态之一，以 delivery_state 区分：
- PendingMessage: 已提交、等待服务端结果（乐观展示）
- ConfirmedMessage: 服务端权威消息
- FailedMessage: 落库失败，可重试

模型不可变；状态迁移总是以新对象替换旧对象。
"""

from datetime import UTC, datetime
from typing import Annotated, Literal

from campuschat.core.models import (
    AttachmentRef,
    ChatMessage,
    DeliveryState,
    MessageKind,
)
from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _LocalBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class PendingMessage(_LocalBase):
    """已提交未确认的乐观消息

    local_created_at 仅用于展示，不参与排序。
    """

    delivery_state: Literal[DeliveryState.PENDING] = DeliveryState.PENDING
    client_correlation_id: str = Field(description="客户端关联 ID（UUID4）")
    room_id: str
    sender_id: str
    body: str | None = None
    attachments: tuple[AttachmentRef, ...] = ()
    kind: MessageKind = MessageKind.TEXT
    local_created_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> str:
        return self.client_correlation_id


class ConfirmedMessage(_LocalBase):
    """服务端落库后的权威消息"""

    delivery_state: Literal[DeliveryState.CONFIRMED] = DeliveryState.CONFIRMED
    message: ChatMessage
    # 本端发出的消息保留关联 ID，其他人的消息为 None
    client_correlation_id: str | None = None

    @property
    def key(self) -> str:
        return self.message.id

    @property
    def body(self) -> str | None:
        return self.message.body


class FailedMessage(_LocalBase):
    """落库失败的消息 -- 保留原内容以便重试"""

    delivery_state: Literal[DeliveryState.FAILED] = DeliveryState.FAILED
    client_correlation_id: str
    room_id: str
    sender_id: str
    body: str | None = None
    attachments: tuple[AttachmentRef, ...] = ()
    kind: MessageKind = MessageKind.TEXT
    local_created_at: datetime
    reason: str = Field(default="storage_error", description="服务端失败原因码")

    @property
    def key(self) -> str:
        return self.client_correlation_id


LocalMessage = Annotated[
    PendingMessage | ConfirmedMessage | FailedMessage,
    Field(discriminator="delivery_state"),
]
