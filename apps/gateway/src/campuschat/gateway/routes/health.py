"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性与磁盘空间。
"""

import shutil
from pathlib import Path

import structlog
from campuschat.core.config import get_db_path
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()

# 低于该剩余空间（MB）视为未就绪
MIN_FREE_DISK_MB = 64


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. sqlite: 数据库连通性
    2. disk_space_mb: 数据库所在磁盘剩余空间
    3. online_connections: 当前 Socket 连接数（仅展示）
    """
    checks: dict[str, str | int] = {}
    all_ok = True

    # 1. SQLite 连通性检查
    try:
        store_group = request.app.state.store_group
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except Exception as e:
        log.warning("ready_check_failed", check="sqlite", error_type=type(e).__name__)
        checks["sqlite"] = f"error: {type(e).__name__}"
        all_ok = False

    # 2. 磁盘空间检查
    try:
        db_dir = Path(get_db_path()).resolve().parent
        disk_usage = shutil.disk_usage(db_dir if db_dir.exists() else "/")
        disk_space_mb = disk_usage.free // (1024 * 1024)
        checks["disk_space_mb"] = disk_space_mb
        if disk_space_mb < MIN_FREE_DISK_MB:
            all_ok = False
    except OSError:
        checks["disk_space_mb"] = 0
        all_ok = False

    room_hub = getattr(request.app.state, "room_hub", None)
    checks["online_connections"] = room_hub.connection_count() if room_hub else 0

    status_code = 200 if all_ok else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if all_ok else "not_ready",
            "checks": checks,
        },
    )
