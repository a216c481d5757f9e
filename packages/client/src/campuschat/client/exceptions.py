"""Client 异常体系

只有连接建立阶段会抛出异常；发送失败一律通过失败事件异步回传。
"""


class ClientError(Exception):
    """客户端基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重连恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class TransportError(ClientError):
    """网关不可达或握手超时"""

    def __init__(self, server_url: str, original_error: Exception | None = None) -> None:
        detail = f": {original_error}" if original_error else ""
        super().__init__(f"cannot connect to {server_url}{detail}", recoverable=True)
        self.server_url = server_url
        self.original_error = original_error


class AuthenticationError(ClientError):
    """握手凭证被拒绝 -- 整个连接失败，重连无意义"""

    def __init__(self, message: str = "authentication_failed") -> None:
        super().__init__(message, recoverable=False)
