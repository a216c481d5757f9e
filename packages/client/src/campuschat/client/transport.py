"""RealtimeTransport -- 客户端到网关的 Socket.IO 长连接

一个已认证会话持有一个连接；握手时携带 auth={token}，凭证无效则整个连接失败。
断线后由 socketio.AsyncClient 按有界指数退避自动重连，
每次（重新）连上都会重新声明所有已打开房间。
断线期间发送的消息不会自动补发。
"""

import asyncio
from collections.abc import Callable
from enum import StrEnum
from functools import partial
from typing import Any

import socketio
import structlog
from campuschat.core.models import ClientEvent, OutboundEnvelope
from socketio import exceptions as sio_exceptions

from .config import ClientConfig, load_client_config
from .exceptions import AuthenticationError, TransportError

log = structlog.get_logger()

# 网关拒绝握手时的错误信息
AUTH_REJECTED = "authentication_failed"

EventHandler = Callable[[str, Any], None]
StatusListener = Callable[["ConnectionStatus"], None]


class ConnectionStatus(StrEnum):
    """连接状态（用于界面上的连接指示）"""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class RealtimeTransport:
    """Socket.IO 传输层

    Args:
        config: 客户端配置，缺省从环境变量加载
        client_factory: 创建 socketio.AsyncClient 的工厂（测试可替换）
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._config = config or load_client_config()
        self._client_factory = client_factory or self._default_client
        self._sio: Any = None
        self._status = ConnectionStatus.DISCONNECTED
        self._closing = False
        self._refusal: str | None = None
        self._rooms: set[str] = set()
        self._event_handlers: list[EventHandler] = []
        self._status_listeners: list[StatusListener] = []
        self._inflight: set[asyncio.Task] = set()

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def connected(self) -> bool:
        return (
            self._status == ConnectionStatus.CONNECTED
            and self._sio is not None
            and self._sio.connected
        )

    @property
    def rooms(self) -> frozenset[str]:
        """当前已声明的房间"""
        return frozenset(self._rooms)

    def add_event_handler(self, handler: EventHandler) -> Callable[[], None]:
        """注册服务端事件处理器 handler(event, data)，返回注销函数"""
        self._event_handlers.append(handler)

        def remove() -> None:
            if handler in self._event_handlers:
                self._event_handlers.remove(handler)

        return remove

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """注册连接状态监听器，返回注销函数"""
        self._status_listeners.append(listener)

        def remove() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return remove

    async def connect(self, credential: str) -> None:
        """建立连接并完成握手认证

        Raises:
            AuthenticationError: 网关拒绝凭证
            TransportError: 网关不可达或握手超时
        """
        if self._sio is not None and self._sio.connected:
            return

        self._closing = False
        self._refusal = None
        sio = self._client_factory()
        self._bind_handlers(sio)
        self._sio = sio
        self._set_status(ConnectionStatus.CONNECTING)

        try:
            await sio.connect(
                self._config.server_url,
                auth={"token": credential},
                wait_timeout=self._config.connect_timeout_s,
            )
        except sio_exceptions.ConnectionError as e:
            self._sio = None
            self._set_status(ConnectionStatus.DISCONNECTED)
            if self._refusal == AUTH_REJECTED:
                log.warning("transport_auth_rejected", server_url=self._config.server_url)
                raise AuthenticationError(self._refusal) from e
            log.warning(
                "transport_connect_failed",
                server_url=self._config.server_url,
                error=str(e),
            )
            raise TransportError(self._config.server_url, e) from e

    async def disconnect(self) -> None:
        """主动断开，不触发自动重连"""
        self._closing = True
        sio, self._sio = self._sio, None
        if sio is not None:
            await sio.disconnect()
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def join_room(self, room_id: str) -> bool:
        """声明对房间广播流的兴趣（幂等）

        Returns:
            True 如果是新声明的房间
        """
        if room_id in self._rooms:
            return False
        self._rooms.add(room_id)
        if self.connected:
            await self._declare_room(room_id)
        return True

    async def leave_room(self, room_id: str) -> bool:
        """撤销对房间的兴趣（幂等）"""
        if room_id not in self._rooms:
            return False
        self._rooms.discard(room_id)
        if self.connected:
            await self._sio.emit(ClientEvent.LEAVE_ROOM.value, {"roomId": room_id})
        return True

    def send(self, envelope: OutboundEnvelope) -> None:
        """发送消息信封（fire-and-forget，从不抛出）

        结果经 message-confirmed / message-save-failed 事件异步回传。
        """
        self.emit(ClientEvent.SEND_MESSAGE.value, envelope.to_wire())

    def emit(self, event: str, data: Any) -> None:
        """调度一次异步 emit；未连接时只记录日志，不排队补发"""
        if not self.connected:
            log.info("emit_while_disconnected", event_name=event, status=self._status.value)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.warning("emit_without_event_loop", event_name=event)
            return

        task = loop.create_task(self._do_emit(self._sio, event, data))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def flush(self) -> None:
        """等待所有已调度的 emit 完成"""
        if self._inflight:
            await asyncio.gather(*list(self._inflight))

    def _default_client(self) -> socketio.AsyncClient:
        return socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=self._config.reconnect_attempts,
            reconnection_delay=self._config.reconnect_delay_s,
            reconnection_delay_max=self._config.reconnect_delay_max_s,
        )

    def _bind_handlers(self, sio: Any) -> None:
        sio.on("connect", self._on_connect)
        sio.on("connect_error", self._on_connect_error)
        sio.on("disconnect", self._on_disconnect)
        sio.on("*", self._on_any)

    async def _on_connect(self) -> None:
        self._set_status(ConnectionStatus.CONNECTED)
        log.info("transport_connected", rooms=len(self._rooms))
        # 每次（重新）连上都重新声明房间
        for room_id in sorted(self._rooms):
            await self._declare_room(room_id)

    async def _on_connect_error(self, data: Any = None) -> None:
        if isinstance(data, dict):
            self._refusal = data.get("message")
        elif isinstance(data, str):
            self._refusal = data

    async def _on_disconnect(self, *_args: Any) -> None:
        if self._closing:
            self._set_status(ConnectionStatus.DISCONNECTED)
            return
        log.warning("transport_disconnected", rooms=len(self._rooms))
        self._set_status(ConnectionStatus.RECONNECTING)

    async def _on_any(self, event: str, data: Any = None) -> None:
        for handler in list(self._event_handlers):
            handler(event, data)

    async def _declare_room(self, room_id: str) -> None:
        await self._sio.emit(
            ClientEvent.JOIN_ROOM.value,
            {"roomId": room_id},
            callback=partial(self._on_join_ack, room_id),
        )

    def _on_join_ack(self, room_id: str, ack: Any = None) -> None:
        if isinstance(ack, dict) and not ack.get("ok", False):
            log.warning("room_join_rejected", room_id=room_id, reason=ack.get("error"))

    async def _do_emit(self, sio: Any, event: str, data: Any) -> None:
        try:
            await sio.emit(event, data)
        except Exception as e:
            log.error("emit_failed", event_name=event, error_type=type(e).__name__)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        for listener in list(self._status_listeners):
            listener(status)
