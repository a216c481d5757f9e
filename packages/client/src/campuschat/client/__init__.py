"""CampusChat Client -- 乐观发送与对账的实时聊天客户端

公共类型从此入口导入。
"""

from .client import ChatClient
from .config import ClientConfig, load_client_config
from .exceptions import AuthenticationError, ClientError, TransportError
from .message_store import RoomMessageStore
from .models import ConfirmedMessage, FailedMessage, LocalMessage, PendingMessage
from .transport import ConnectionStatus, RealtimeTransport

__all__ = [
    # 入口
    "ChatClient",
    "RoomMessageStore",
    "RealtimeTransport",
    "ConnectionStatus",
    # 本地消息
    "LocalMessage",
    "PendingMessage",
    "ConfirmedMessage",
    "FailedMessage",
    # 配置
    "ClientConfig",
    "load_client_config",
    # 异常
    "ClientError",
    "TransportError",
    "AuthenticationError",
]
