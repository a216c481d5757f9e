"""Socket.IO 事件日志上下文

HTTP 请求由 LoggingMiddleware / RoomContextMiddleware 绑定 request_id、room_id；
Socket 事件没有中间件链，改为包装事件处理器：每次事件生成 event_id，
并绑定 sid、事件名以及 payload 中的 room_id，处理器返回后自动解绑。
"""

import functools
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from ulid import ULID

SocketHandler = Callable[..., Awaitable[Any]]


def room_id_from_payload(data: Any) -> str | None:
    """从事件 payload 中取 room_id，兼容纯字符串与 {roomId} 两种形式"""
    if isinstance(data, str):
        return data or None
    if isinstance(data, dict):
        value = data.get("roomId") or data.get("room_id")
        return value if isinstance(value, str) and value else None
    return None


def bind_socket_context(
    event: str,
    handler: SocketHandler,
    with_room: bool = True,
) -> SocketHandler:
    """包装事件处理器，使处理期间的日志携带 socket 上下文

    Args:
        event: 事件名
        handler: 原处理器 handler(sid, *args)
        with_room: 是否从首个参数提取 room_id（connect / disconnect 为 False）
    """

    @functools.wraps(handler)
    async def wrapper(sid: str, *args: Any) -> Any:
        context: dict[str, Any] = {
            "event_id": str(ULID()),
            "sid": sid,
            "socket_event": event,
        }
        if with_room and args:
            room_id = room_id_from_payload(args[0])
            if room_id:
                context["room_id"] = room_id
        with structlog.contextvars.bound_contextvars(**context):
            return await handler(sid, *args)

    return wrapper
