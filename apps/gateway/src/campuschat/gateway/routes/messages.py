"""房间消息路由

GET /api/rooms/{room_id}/messages: 历史消息分页（按 seq 正序）。
POST /api/rooms/{room_id}/messages: HTTP 发送通道，走与 Socket 相同的 Broker 流程。
"""

import uuid

from campuschat.core.config import HISTORY_PAGE_SIZE, HISTORY_PAGE_SIZE_MAX
from campuschat.core.exceptions import (
    AuthorizationError,
    MessageValidationError,
    PersistenceError,
)
from campuschat.core.models import (
    AttachmentRef,
    MessageKind,
    OutboundEnvelope,
    UserInfo,
    WireModel,
)
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import Field
from starlette.responses import JSONResponse

from ..deps import get_broker, get_current_user, get_store_group

router = APIRouter()


class SendMessageRequest(WireModel):
    """HTTP 发送请求体（camelCase）"""

    body: str | None = Field(default=None, description="文本内容")
    attachments: list[AttachmentRef] = Field(default_factory=list, description="附件列表")
    kind: MessageKind = Field(default=MessageKind.TEXT, description="消息类型")
    client_correlation_id: str | None = Field(
        default=None, description="客户端关联 ID，缺省时由服务端生成"
    )


@router.get("/api/rooms/{room_id}/messages")
async def list_room_messages(
    room_id: str,
    limit: int = Query(default=HISTORY_PAGE_SIZE, ge=1, description="每页条数"),
    before_seq: int | None = Query(default=None, ge=1, description="向前翻页游标"),
    user: UserInfo = Depends(get_current_user),
    store_group=Depends(get_store_group),
):
    """查询房间历史消息，仅房间成员可读"""
    if not await store_group.room_store.is_member(room_id, user.user_id):
        raise HTTPException(status_code=403, detail="not_room_member")

    page_size = min(limit, HISTORY_PAGE_SIZE_MAX)
    # 多取一条用于判断是否还有更早的消息
    messages = await store_group.message_store.list_messages(
        room_id, page_size + 1, before_seq
    )
    has_more = len(messages) > page_size
    if has_more:
        messages = messages[1:]

    return {
        "roomId": room_id,
        "messages": [m.to_wire() for m in messages],
        "hasMore": has_more,
    }


@router.post("/api/rooms/{room_id}/messages", status_code=201)
async def send_room_message(
    room_id: str,
    payload: SendMessageRequest,
    user: UserInfo = Depends(get_current_user),
    broker=Depends(get_broker),
):
    """HTTP 发送消息

    - 成功返回 201 + 权威消息（同时广播给房间内 Socket 连接）
    - 非成员 403，内容不合法 422，存储失败 503
    """
    envelope = OutboundEnvelope(
        room_id=room_id,
        body=payload.body,
        attachments=payload.attachments,
        kind=payload.kind,
        client_correlation_id=payload.client_correlation_id or str(uuid.uuid4()),
    )

    try:
        message = await broker.send_message(user, envelope)
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=e.code) from e
    except MessageValidationError as e:
        raise HTTPException(status_code=422, detail=e.code) from e
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.code) from e

    return JSONResponse(status_code=201, content=message.to_wire())
