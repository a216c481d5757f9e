"""CampusChat Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    ClientEvent,
    DeliveryState,
    MessageKind,
    RoomType,
    ServerEvent,
    UserRole,
)
from .envelope import (
    ConfirmEnvelope,
    FailEnvelope,
    OutboundEnvelope,
    PresenceEntry,
    ReadReceipt,
    TypingNotice,
    validate_outbound,
)
from .message import AttachmentRef, ChatMessage, SenderDisplay, WireModel
from .user import Room, UserInfo

__all__ = [
    # 枚举
    "MessageKind",
    "DeliveryState",
    "UserRole",
    "RoomType",
    "ClientEvent",
    "ServerEvent",
    # 消息
    "WireModel",
    "AttachmentRef",
    "SenderDisplay",
    "ChatMessage",
    # 信封
    "OutboundEnvelope",
    "ConfirmEnvelope",
    "FailEnvelope",
    "TypingNotice",
    "ReadReceipt",
    "PresenceEntry",
    "validate_outbound",
    # 用户 / 房间
    "UserInfo",
    "Room",
]
