"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store / Broker 实例

实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from campuschat.core.models import UserInfo
from campuschat.core.store import StoreGroup
from fastapi import Depends, HTTPException, Request


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_broker(request: Request):
    """从 app.state 获取 MessageBroker 实例"""
    return request.app.state.broker


async def get_current_user(
    request: Request,
    store_group: StoreGroup = Depends(get_store_group),
) -> UserInfo:
    """解析 Authorization: Bearer <token>，无效时返回 401"""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="missing bearer token")

    user = await store_group.user_store.get_user_by_token(token.strip())
    if user is None:
        raise HTTPException(status_code=401, detail="invalid bearer token")
    return user
