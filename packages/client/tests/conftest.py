"""packages/client 测试配置 -- 权威消息工厂与伪造的 Socket.IO 客户端"""

from datetime import UTC, datetime
from typing import Any

import pytest
from campuschat.core.models import ChatMessage, MessageKind, SenderDisplay, UserRole
from socketio import exceptions as sio_exceptions


@pytest.fixture
def canonical():
    """构造服务端权威消息"""

    def _make(
        message_id: str,
        seq: int,
        body: str | None = "hello",
        room_id: str = "r1",
        sender_id: str = "u-alice",
    ) -> ChatMessage:
        return ChatMessage(
            id=message_id,
            room_id=room_id,
            seq=seq,
            sender_id=sender_id,
            sender_display=SenderDisplay(name="Alice", role=UserRole.STUDENT),
            body=body,
            kind=MessageKind.TEXT,
            created_at=datetime.now(UTC),
        )

    return _make


class FakeAsyncClient:
    """最小化的 socketio.AsyncClient 替身

    connect 时按 refuse 决定握手结果；emit 只记录。
    """

    def __init__(self, refuse: str | None = None, unreachable: bool = False) -> None:
        self.refuse = refuse
        self.unreachable = unreachable
        self.connected = False
        self.handlers: dict[str, Any] = {}
        self.emitted: list[tuple[str, Any]] = []
        self.connect_kwargs: dict[str, Any] = {}

    def on(self, event: str, handler: Any) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.connect_kwargs = {"url": url, **kwargs}
        if self.unreachable:
            raise sio_exceptions.ConnectionError("Connection refused by the server")
        if self.refuse:
            await self.handlers["connect_error"]({"message": self.refuse})
            raise sio_exceptions.ConnectionError("One or more namespaces failed to connect")
        self.connected = True
        await self.handlers["connect"]()

    async def emit(self, event: str, data: Any = None, callback: Any = None) -> None:
        self.emitted.append((event, data))
        if callback is not None:
            callback({"ok": True, "roomId": (data or {}).get("roomId")})

    async def disconnect(self) -> None:
        self.connected = False
        await self.handlers["disconnect"]("client disconnect")

    # 测试辅助：模拟网络断开与自动重连
    async def drop(self) -> None:
        self.connected = False
        await self.handlers["disconnect"]("transport close")

    async def reconnect(self) -> None:
        self.connected = True
        await self.handlers["connect"]()

    async def server_event(self, event: str, data: Any) -> None:
        await self.handlers["*"](event, data)


@pytest.fixture
def fake_sio() -> FakeAsyncClient:
    return FakeAsyncClient()
