"""ChatClient -- 一个已认证会话的客户端入口

持有一个 RealtimeTransport（生命周期与会话绑定），
为每个打开的房间维护一个 RoomMessageStore，并按 roomId 路由服务端事件。
"""

from collections.abc import Callable
from typing import Any

import structlog
from campuschat.core.models import (
    ChatMessage,
    ClientEvent,
    ConfirmEnvelope,
    FailEnvelope,
    PresenceEntry,
    ReadReceipt,
    ServerEvent,
    TypingNotice,
)
from pydantic import ValidationError

from .config import ClientConfig
from .message_store import RoomMessageStore
from .transport import RealtimeTransport

log = structlog.get_logger()

SideEventListener = Callable[[str, Any], None]


class ChatClient:
    """聊天客户端

    Args:
        user_id: 本端用户 ID（与握手凭证对应）
        transport: 传输层实例，缺省按 config 新建
        config: 客户端配置
    """

    def __init__(
        self,
        user_id: str,
        transport: RealtimeTransport | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        self.user_id = user_id
        self.transport = transport or RealtimeTransport(config)
        self.online_users: list[PresenceEntry] = []
        self._rooms: dict[str, RoomMessageStore] = {}
        self._side_listeners: list[SideEventListener] = []
        self._remove_handler = self.transport.add_event_handler(self._on_event)

    async def connect(self, credential: str) -> None:
        await self.transport.connect(credential)

    async def close(self) -> None:
        """结束会话：注销事件处理并断开连接"""
        self._remove_handler()
        await self.transport.disconnect()

    async def open_room(self, room_id: str) -> RoomMessageStore:
        """打开房间（幂等），返回该房间的消息视图"""
        store = self._rooms.get(room_id)
        if store is None:
            store = RoomMessageStore(room_id, self.user_id, self.transport.send)
            self._rooms[room_id] = store
        await self.transport.join_room(room_id)
        return store

    async def close_room(self, room_id: str) -> None:
        self._rooms.pop(room_id, None)
        await self.transport.leave_room(room_id)

    def room(self, room_id: str) -> RoomMessageStore | None:
        return self._rooms.get(room_id)

    def send_typing(self, room_id: str, is_typing: bool = True) -> None:
        self.transport.emit(
            ClientEvent.TYPING.value,
            TypingNotice(room_id=room_id, is_typing=is_typing).to_wire(),
        )

    def mark_read(self, room_id: str, message_id: str) -> None:
        self.transport.emit(
            ClientEvent.MESSAGE_READ.value,
            {"roomId": room_id, "messageId": message_id},
        )

    def add_side_listener(self, listener: SideEventListener) -> Callable[[], None]:
        """注册附属事件监听器（输入提示、已读、在线用户、错误），返回注销函数"""
        self._side_listeners.append(listener)

        def remove() -> None:
            if listener in self._side_listeners:
                self._side_listeners.remove(listener)

        return remove

    def _on_event(self, event: str, data: Any) -> None:
        try:
            if event == ServerEvent.NEW_MESSAGE:
                message = ChatMessage.model_validate(data)
                store = self._rooms.get(message.room_id)
                if store is not None:
                    store.on_broadcast_message(message)
            elif event == ServerEvent.MESSAGE_CONFIRMED:
                confirm = ConfirmEnvelope.model_validate(data)
                store = self._rooms.get(confirm.canonical_message.room_id)
                if store is not None:
                    store.on_confirmed(
                        confirm.client_correlation_id, confirm.canonical_message
                    )
            elif event == ServerEvent.MESSAGE_SAVE_FAILED:
                self._route_failure(FailEnvelope.model_validate(data))
            else:
                self._dispatch_side_event(event, data)
        except ValidationError:
            log.warning("malformed_server_event", event_name=event)

    def _route_failure(self, fail: FailEnvelope) -> None:
        if fail.room_id is not None:
            stores = [self._rooms[fail.room_id]] if fail.room_id in self._rooms else []
        else:
            stores = list(self._rooms.values())
        for store in stores:
            if store.on_failed(fail.client_correlation_id, fail.reason):
                return

    def _dispatch_side_event(self, event: str, data: Any) -> None:
        payload: Any = data
        if event == ServerEvent.USER_TYPING:
            payload = TypingNotice.model_validate(data)
        elif event == ServerEvent.MESSAGE_READ_UPDATE:
            payload = ReadReceipt.model_validate(data)
        elif event == ServerEvent.ONLINE_USERS:
            self.online_users = [PresenceEntry.model_validate(u) for u in data or []]
            payload = self.online_users
        for listener in list(self._side_listeners):
            listener(event, payload)
