"""枚举定义

包含消息类型 MessageKind、客户端投递状态 DeliveryState、用户角色 UserRole，
以及 Socket.IO 双向事件名 ClientEvent / ServerEvent。
"""

from enum import StrEnum


class MessageKind(StrEnum):
    """消息类型 -- 决定渲染方式与校验规则"""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


class DeliveryState(StrEnum):
    """客户端本地投递状态（不落库）"""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class UserRole(StrEnum):
    """用户角色"""

    STUDENT = "student"
    FACULTY = "faculty"
    LOCAL_ADMIN = "local_admin"
    CENTRAL_ADMIN = "central_admin"


class RoomType(StrEnum):
    """聊天室类型"""

    DEPARTMENT = "department"
    CLASS = "class"
    PRIVATE = "private"
    GLOBAL = "global"
    PRIVATE_GROUP = "private-group"


class ClientEvent(StrEnum):
    """客户端 -> 服务端事件"""

    JOIN_ROOM = "join-room"
    LEAVE_ROOM = "leave-room"
    SEND_MESSAGE = "send-message"
    TYPING = "typing"
    MESSAGE_READ = "message-read"


class ServerEvent(StrEnum):
    """服务端 -> 客户端事件"""

    NEW_MESSAGE = "new-message"
    MESSAGE_CONFIRMED = "message-confirmed"
    MESSAGE_SAVE_FAILED = "message-save-failed"
    MESSAGE_ERROR = "message-error"
    USER_TYPING = "user-typing"
    MESSAGE_READ_UPDATE = "message-read-update"
    ONLINE_USERS = "online-users"
