"""apps/gateway 测试配置 -- 记录型 emitter、Broker、FastAPI app + httpx 客户端"""

import os
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from typing import Any

import pytest
import pytest_asyncio
from campuschat.core.store import StoreGroup
from campuschat.gateway.services.broker import MessageBroker
from campuschat.gateway.services.room_hub import RoomHub
from httpx import ASGITransport, AsyncClient


class RecordingEmitter:
    """替代 socketio.AsyncServer.emit，按调用顺序记录 (event, data, to)"""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any, str | None]] = []
        self.failing_sids: set[str] = set()

    async def __call__(self, event: str, data: Any = None, to: str | None = None) -> None:
        if to in self.failing_sids:
            raise ConnectionResetError(f"sid {to} gone")
        self.calls.append((str(event), data, to))

    def to(self, sid: str) -> list[tuple[str, Any]]:
        """某个连接收到的事件序列"""
        return [(event, data) for event, data, target in self.calls if target == sid]

    def events(self, event: str) -> list[tuple[Any, str | None]]:
        return [(data, target) for name, data, target in self.calls if name == event]


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def hub(emitter: RecordingEmitter) -> RoomHub:
    return RoomHub(emitter)


@pytest_asyncio.fixture
async def users(store_group: StoreGroup) -> SimpleNamespace:
    """预置用户（alice / bob / carol）"""
    return SimpleNamespace(
        alice=await store_group.user_store.get_user("u-alice"),
        bob=await store_group.user_store.get_user("u-bob"),
        carol=await store_group.user_store.get_user("u-carol"),
    )


@pytest.fixture
def broker(store_group: StoreGroup, hub: RoomHub) -> MessageBroker:
    return MessageBroker(store_group, hub)


@pytest_asyncio.fixture
async def app(store_group: StoreGroup, tmp_path):
    """创建测试用 FastAPI app 实例（绕过 lifespan，复用预置数据库）"""
    os.environ["CAMPUSCHAT_DB_PATH"] = str(tmp_path / "test.db")

    from campuschat.gateway.main import create_app

    application, _sio = create_app()
    application.state.store_group = store_group
    application.state.broker = MessageBroker(store_group, application.state.room_hub)
    yield application

    os.environ.pop("CAMPUSCHAT_DB_PATH", None)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
