"""FastAPI + Socket.IO 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭、Broker 装配、路由与 Socket 事件注册。
ASGI 入口为 asgi_app（Socket.IO 挂在 /socket.io，其余请求交给 FastAPI）。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import socketio
import structlog
from campuschat.core.config import get_cors_origins, get_db_path
from campuschat.core.store import create_store_group
from fastapi import FastAPI

from .middleware.logging_config import setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.room_mw import RoomContextMiddleware
from .routes import health, messages
from .services.broker import MessageBroker
from .services.room_hub import RoomHub
from .services.socket_gateway import SocketGateway

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 与 Broker，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group
    app.state.broker = MessageBroker(store_group, app.state.room_hub)
    log.info("gateway_started", db_path=db_path)

    yield

    if getattr(app.state, "store_group", None):
        await app.state.store_group.close()
    log.info("gateway_stopped")


def create_app() -> tuple[FastAPI, socketio.AsyncServer]:
    """创建 FastAPI 应用与 Socket.IO 服务端"""
    app = FastAPI(
        title="CampusChat Gateway",
        version="0.1.0",
        description="校园实时聊天消息网关",
        lifespan=lifespan,
    )

    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=get_cors_origins(),
    )
    app.state.sio = sio
    app.state.room_hub = RoomHub(sio.emit)
    SocketGateway(sio, app.state).register()

    # 注册中间件（顺序：先 Room 后 Logging）
    app.add_middleware(RoomContextMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()

    # 注册路由
    app.include_router(messages.router, tags=["messages"])
    app.include_router(health.router, tags=["health"])

    return app, sio


# 默认实例（uvicorn 入口：campuschat.gateway.main:asgi_app）
app, sio = create_app()
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
