"""RoomContextMiddleware -- 为房间相关请求绑定 room_id

room_id 从 /api/rooms/{room_id}/... 路径中提取，贯穿该请求内的所有日志。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


def extract_room_id(path: str) -> str | None:
    """从请求路径中提取 room_id"""
    parts = [p for p in path.split("/") if p]
    for i, part in enumerate(parts):
        if part == "rooms" and i + 1 < len(parts):
            return parts[i + 1]
    return None


class RoomContextMiddleware(BaseHTTPMiddleware):
    """房间级日志上下文中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        room_id = extract_room_id(request.url.path)
        if room_id:
            structlog.contextvars.bind_contextvars(room_id=room_id)

        return await call_next(request)
