"""SocketGateway -- Socket.IO 服务端事件处理

连接握手时一次性校验凭证；之后的 join/leave/send/typing/read 事件
全部以握手时认证的用户身份处理。
"""

from typing import Any

import socketio
import structlog
from campuschat.core.exceptions import ChatError
from campuschat.core.models import (
    ClientEvent,
    FailEnvelope,
    OutboundEnvelope,
    ReadReceipt,
    ServerEvent,
    TypingNotice,
    UserInfo,
)
from pydantic import ValidationError
from socketio import exceptions as sio_exceptions

from ..middleware.socket_context import bind_socket_context, room_id_from_payload

log = structlog.get_logger()

# 凭证被拒绝时返回给客户端的错误信息
AUTH_REJECTED = "authentication_failed"


class SocketGateway:
    """Socket.IO 事件处理器集合

    依赖通过 app.state 获取：store_group / room_hub / broker 在 lifespan 中就绪。
    """

    def __init__(self, sio: socketio.AsyncServer, state: Any) -> None:
        self._sio = sio
        self._state = state

    def register(self) -> None:
        """注册全部事件处理器（统一绑定 socket 日志上下文）"""
        lifecycle = {"connect": self.on_connect, "disconnect": self.on_disconnect}
        events = {
            ClientEvent.JOIN_ROOM.value: self.on_join_room,
            ClientEvent.LEAVE_ROOM.value: self.on_leave_room,
            ClientEvent.SEND_MESSAGE.value: self.on_send_message,
            ClientEvent.TYPING.value: self.on_typing,
            ClientEvent.MESSAGE_READ.value: self.on_message_read,
        }
        for name, handler in lifecycle.items():
            self._sio.on(name, bind_socket_context(name, handler, with_room=False))
        for name, handler in events.items():
            self._sio.on(name, bind_socket_context(name, handler))

    async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
        """握手认证：凭证无效时拒绝整个连接"""
        token = auth.get("token") if isinstance(auth, dict) else None
        user = await self._state.store_group.user_store.get_user_by_token(token)
        if user is None:
            log.warning("socket_auth_rejected", sid=sid)
            raise sio_exceptions.ConnectionRefusedError(AUTH_REJECTED)

        self._state.room_hub.register_connection(sid, user)
        log.info("socket_connected", sid=sid, user_id=user.user_id, role=user.role.value)
        await self._broadcast_presence()

    async def on_disconnect(self, sid: str, *_args: Any) -> None:
        user = self._state.room_hub.drop_connection(sid)
        if user is None:
            return
        log.info("socket_disconnected", sid=sid, user_id=user.user_id)
        await self._broadcast_presence()

    async def on_join_room(self, sid: str, data: Any) -> dict[str, Any]:
        """加入房间广播流，仅房间成员可加入"""
        user = self._user(sid)
        room_id = room_id_from_payload(data)
        if user is None or room_id is None:
            return {"ok": False, "error": "invalid_request"}

        try:
            is_member = await self._state.store_group.room_store.is_member(
                room_id, user.user_id
            )
        except Exception as e:
            log.error("join_lookup_failed", error_type=type(e).__name__)
            return {"ok": False, "roomId": room_id, "error": "storage_error"}

        if not is_member:
            log.warning("join_rejected", user_id=user.user_id)
            return {"ok": False, "roomId": room_id, "error": "not_room_member"}

        if self._state.room_hub.join(room_id, sid):
            log.info("room_joined", user_id=user.user_id)
        return {"ok": True, "roomId": room_id}

    async def on_leave_room(self, sid: str, data: Any) -> dict[str, Any]:
        room_id = room_id_from_payload(data)
        if room_id is None:
            return {"ok": False, "error": "invalid_request"}
        if self._state.room_hub.leave(room_id, sid):
            log.info("room_left")
        return {"ok": True, "roomId": room_id}

    async def on_send_message(self, sid: str, data: Any) -> None:
        """消息信封入口 -- 结果经 message-confirmed / message-save-failed 异步下发"""
        user = self._user(sid)
        if user is None:
            return

        try:
            envelope = OutboundEnvelope.model_validate(data)
        except ValidationError:
            await self._reject_malformed(sid, data)
            return

        try:
            await self._state.broker.send_message(user, envelope, origin_sid=sid)
        except ChatError as e:
            # 失败已由 broker 通知发送方
            log.debug("send_message_failed", reason=e.code)

    async def on_typing(self, sid: str, data: Any) -> None:
        user = self._user(sid)
        if user is None:
            return
        try:
            notice = TypingNotice.model_validate(data)
        except ValidationError:
            return
        await self._state.broker.relay_typing(user, notice, sid)

    async def on_message_read(self, sid: str, data: Any) -> None:
        user = self._user(sid)
        if user is None:
            return
        try:
            receipt = ReadReceipt.model_validate(data)
            await self._state.broker.mark_read(user, receipt)
        except ValidationError:
            await self._send_error(sid, "invalid_request")
        except ChatError as e:
            log.info("read_receipt_rejected", reason=e.code)
            await self._send_error(sid, e.code)

    def _user(self, sid: str) -> UserInfo | None:
        return self._state.room_hub.user_for(sid)

    async def _reject_malformed(self, sid: str, data: Any) -> None:
        """无法解析的信封：有关联 ID 时走失败事件，否则下发通用错误"""
        correlation_id = None
        room_id = None
        if isinstance(data, dict):
            correlation_id = data.get("clientCorrelationId")
            room_id = data.get("roomId")
        log.info("malformed_envelope", has_correlation_id=bool(correlation_id))
        if isinstance(correlation_id, str) and correlation_id:
            await self._state.room_hub.send_to(
                sid,
                ServerEvent.MESSAGE_SAVE_FAILED,
                FailEnvelope(
                    client_correlation_id=correlation_id,
                    room_id=room_id if isinstance(room_id, str) else None,
                    reason="invalid_message",
                ).to_wire(),
            )
        else:
            await self._send_error(sid, "invalid_message")

    async def _send_error(self, sid: str, code: str) -> None:
        await self._state.room_hub.send_to(sid, ServerEvent.MESSAGE_ERROR, {"error": code})

    async def _broadcast_presence(self) -> None:
        users = self._state.room_hub.online_users()
        await self._state.room_hub.broadcast_all(
            ServerEvent.ONLINE_USERS, [u.to_wire() for u in users]
        )
