"""Core 异常体系

Broker 侧错误只回传给发送方连接，不会扩散到房间内其他成员。
每个异常携带稳定的 code，直接作为失败事件的 reason 下发。
"""


class ChatError(Exception):
    """消息核心基础异常"""

    def __init__(self, message: str, code: str = "chat_error") -> None:
        """
        Args:
            message: 错误描述（仅用于日志与服务端排查）
            code: 下发给客户端的稳定错误码
        """
        super().__init__(message)
        self.code = code


class AuthorizationError(ChatError):
    """发送方不是房间成员"""

    def __init__(self, user_id: str, room_id: str) -> None:
        super().__init__(
            f"user {user_id} is not a member of room {room_id}",
            code="not_room_member",
        )
        self.user_id = user_id
        self.room_id = room_id


class MessageValidationError(ChatError):
    """消息内容校验失败（空消息、附件不匹配、超长等）"""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="invalid_message")


class PersistenceError(ChatError):
    """持久化失败

    原始异常只保留在 original_error 上，不下发给客户端。
    """

    def __init__(self, room_id: str, original_error: Exception) -> None:
        super().__init__(
            f"failed to persist message in room {room_id}: {type(original_error).__name__}",
            code="storage_error",
        )
        self.room_id = room_id
        self.original_error = original_error
