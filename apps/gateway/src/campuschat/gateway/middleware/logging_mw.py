"""LoggingMiddleware -- 为每个 HTTP 请求绑定 request_id 到 structlog contextvars

上游（反向代理 / 客户端）已带 X-Request-ID 时沿用，否则生成 ULID。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

# 沿用上游 request_id 的最大长度
MAX_UPSTREAM_REQUEST_ID = 64


def resolve_request_id(upstream: str | None) -> str:
    """取合法的上游 request_id，否则生成新的 ULID"""
    if upstream:
        upstream = upstream.strip()
        if 0 < len(upstream) <= MAX_UPSTREAM_REQUEST_ID and upstream.isprintable():
            return upstream
    return str(ULID())


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = resolve_request_id(request.headers.get("X-Request-ID"))
        started = time.monotonic()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        log = structlog.get_logger()
        await log.ainfo("request_started")

        response = await call_next(request)

        await log.ainfo(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )

        response.headers["X-Request-ID"] = request_id
        return response
