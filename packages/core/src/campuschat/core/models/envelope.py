"""Socket 线上信封定义

Outbound (client -> broker)、Confirm / Fail (broker -> sender)，
以及输入提示、已读回执、在线用户等附属事件的 payload。
"""

from datetime import datetime

from pydantic import Field

from ..config import MESSAGE_BODY_MAX_LENGTH, MESSAGE_MAX_ATTACHMENTS
from ..exceptions import MessageValidationError
from .enums import MessageKind, UserRole
from .message import AttachmentRef, ChatMessage, WireModel


class OutboundEnvelope(WireModel):
    """客户端发出的消息信封"""

    room_id: str = Field(min_length=1, description="目标房间")
    body: str | None = Field(default=None, description="文本内容")
    attachments: list[AttachmentRef] = Field(default_factory=list, description="附件列表")
    kind: MessageKind = Field(default=MessageKind.TEXT, description="消息类型")
    client_correlation_id: str = Field(min_length=1, description="客户端关联 ID")


class ConfirmEnvelope(WireModel):
    """仅发送给发送方的落库确认"""

    client_correlation_id: str
    canonical_message: ChatMessage


class FailEnvelope(WireModel):
    """仅发送给发送方的失败通知"""

    client_correlation_id: str
    room_id: str | None = None
    reason: str


class TypingNotice(WireModel):
    """输入提示"""

    room_id: str
    is_typing: bool = True
    user_id: str | None = None
    user_name: str | None = None


class ReadReceipt(WireModel):
    """已读回执"""

    room_id: str
    message_id: str
    user_id: str | None = None
    read_at: datetime | None = None


class PresenceEntry(WireModel):
    """在线用户条目"""

    user_id: str
    name: str
    role: UserRole
    connections: int = 1


def validate_outbound(
    envelope: OutboundEnvelope,
    max_body_length: int = MESSAGE_BODY_MAX_LENGTH,
    max_attachments: int = MESSAGE_MAX_ATTACHMENTS,
) -> None:
    """按消息类型校验信封内容

    Raises:
        MessageValidationError: 空消息、类型与附件不匹配、超出上限
    """
    has_body = envelope.body is not None and envelope.body.strip() != ""
    attachments = envelope.attachments

    if not has_body and not attachments:
        raise MessageValidationError("message has neither body nor attachments")
    if envelope.body is not None and len(envelope.body) > max_body_length:
        raise MessageValidationError(
            f"message body exceeds {max_body_length} characters"
        )
    if len(attachments) > max_attachments:
        raise MessageValidationError(
            f"message carries more than {max_attachments} attachments"
        )

    if envelope.kind == MessageKind.TEXT and not has_body:
        raise MessageValidationError("text message requires a body")
    if envelope.kind == MessageKind.FILE and not attachments:
        raise MessageValidationError("file message requires an attachment")
    if envelope.kind == MessageKind.IMAGE:
        if not attachments:
            raise MessageValidationError("image message requires an attachment")
        if any(not a.media_type.startswith("image/") for a in attachments):
            raise MessageValidationError("image message accepts image attachments only")
