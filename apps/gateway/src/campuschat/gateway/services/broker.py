"""MessageBroker -- 消息落库与房间广播的唯一权威

单条入站信封的处理流程：
1. 授权：发送方必须是房间成员
2. 校验 + 落库：分配 id / seq / created_at 并写入 messages 表
3. 成功：先向发送方连接单独确认，再向房间全体广播权威消息
4. 失败：只通知发送方连接，不向房间广播任何内容

同一房间的落库通过房间锁串行化，广播也在锁内完成，
因此所有成员观察到的顺序与落库完成顺序一致。
写事务从 WriterPool 借出独立连接，不同房间之间没有共享锁。
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import NoReturn

import structlog
from campuschat.core.exceptions import (
    AuthorizationError,
    ChatError,
    MessageValidationError,
    PersistenceError,
)
from campuschat.core.models import (
    ChatMessage,
    ConfirmEnvelope,
    FailEnvelope,
    OutboundEnvelope,
    ReadReceipt,
    ServerEvent,
    TypingNotice,
    UserInfo,
    validate_outbound,
)
from campuschat.core.store import (
    StoreGroup,
    append_message_and_touch_room,
    record_read_receipt,
)
from ulid import ULID

from .room_hub import RoomHub

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _RoomLock:
    """房间锁与当前持有/等待者计数"""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class MessageBroker:
    """消息代理 / 持久化协调者"""

    def __init__(
        self,
        store_group: StoreGroup,
        room_hub: RoomHub,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._stores = store_group
        self._hub = room_hub
        self._clock = clock
        # room_id -> 房间锁；无人持有或等待时移除
        self._room_locks: dict[str, _RoomLock] = {}

    async def send_message(
        self,
        sender: UserInfo,
        envelope: OutboundEnvelope,
        origin_sid: str | None = None,
    ) -> ChatMessage:
        """处理一条入站消息信封

        Args:
            sender: 已认证的发送方
            envelope: 客户端信封
            origin_sid: 发送方连接 ID；HTTP 发送路径为 None（不下发确认/失败事件）

        Returns:
            落库后的权威消息

        Raises:
            AuthorizationError: 发送方不是房间成员
            MessageValidationError: 消息内容不合法
            PersistenceError: 存储写入失败
        """
        room_id = envelope.room_id

        # 1. 授权（成员查询本身失败按存储错误处理）
        try:
            is_member = await self._stores.room_store.is_member(room_id, sender.user_id)
        except Exception as e:
            await self._fail_storage(origin_sid, envelope, sender, e)

        if not is_member:
            error = AuthorizationError(sender.user_id, room_id)
            log.warning(
                "send_rejected",
                room_id=room_id,
                user_id=sender.user_id,
                reason=error.code,
            )
            await self._notify_failure(origin_sid, envelope, error)
            raise error

        # 2. 校验（校验失败与存储失败同样走失败通知）
        try:
            validate_outbound(envelope)
        except MessageValidationError as error:
            log.info(
                "message_validation_failed",
                room_id=room_id,
                user_id=sender.user_id,
                detail=str(error),
            )
            await self._notify_failure(origin_sid, envelope, error)
            raise

        async with self._room_lock(room_id):
            try:
                message = await self._persist(sender, envelope)
            except Exception as e:
                await self._fail_storage(origin_sid, envelope, sender, e)

            log.info(
                "message_persisted",
                room_id=room_id,
                message_id=message.id,
                seq=message.seq,
                user_id=sender.user_id,
                kind=message.kind.value,
                attachment_count=len(message.attachments),
            )

            # 3. 先单独确认发送方，再广播给房间（同一连接上确认先于广播到达）
            if origin_sid is not None:
                await self._confirm(origin_sid, envelope, message)
            await self._hub.broadcast(
                room_id, ServerEvent.NEW_MESSAGE, message.to_wire()
            )

        return message

    async def mark_read(
        self,
        reader: UserInfo,
        receipt: ReadReceipt,
    ) -> bool:
        """记录已读回执并通知房间

        Returns:
            True 如果是首次已读（此时才广播）

        Raises:
            AuthorizationError: 读者不是房间成员
            ChatError: 消息不存在或不属于该房间
            PersistenceError: 存储读写失败
        """
        room_id = receipt.room_id
        try:
            is_member = await self._stores.room_store.is_member(room_id, reader.user_id)
            message = await self._stores.message_store.get_message(receipt.message_id)
        except Exception as e:
            raise PersistenceError(room_id, e) from e

        if not is_member:
            raise AuthorizationError(reader.user_id, room_id)
        if message is None or message.room_id != room_id:
            raise ChatError(
                f"message {receipt.message_id} not found in room {room_id}",
                code="message_not_found",
            )

        read_at = self._clock()
        try:
            async with self._stores.writers.acquire() as writer:
                inserted = await record_read_receipt(
                    writer.conn,
                    writer.message_store,
                    message.id,
                    reader.user_id,
                    read_at.isoformat(),
                )
        except Exception as e:
            raise PersistenceError(room_id, e) from e
        if inserted:
            await self._hub.broadcast(
                room_id,
                ServerEvent.MESSAGE_READ_UPDATE,
                ReadReceipt(
                    room_id=room_id,
                    message_id=message.id,
                    user_id=reader.user_id,
                    read_at=read_at,
                ).to_wire(),
            )
        return inserted

    async def relay_typing(
        self,
        typist: UserInfo,
        notice: TypingNotice,
        origin_sid: str,
    ) -> int:
        """把输入提示转发给房间其他成员

        只有已加入房间广播流的连接才能转发。

        Returns:
            实际投递的连接数
        """
        if origin_sid not in self._hub.members(notice.room_id):
            return 0
        return await self._hub.broadcast(
            notice.room_id,
            ServerEvent.USER_TYPING,
            TypingNotice(
                room_id=notice.room_id,
                is_typing=notice.is_typing,
                user_id=typist.user_id,
                user_name=typist.name,
            ).to_wire(),
            skip_sid=origin_sid,
        )

    async def _persist(self, sender: UserInfo, envelope: OutboundEnvelope) -> ChatMessage:
        """分配 seq / created_at 并落库（需在房间锁内调用）"""
        tail_seq, tail_at = await self._stores.message_store.get_room_tail(
            envelope.room_id
        )
        now = self._clock()
        # created_at 在房间内单调不减，不受时钟回拨影响
        created_at = now if tail_at is None or now >= tail_at else tail_at
        body = envelope.body if envelope.body and envelope.body.strip() else None

        message = ChatMessage(
            id=str(ULID()),
            room_id=envelope.room_id,
            seq=tail_seq + 1,
            sender_id=sender.user_id,
            sender_display=sender.display(),
            body=body,
            attachments=list(envelope.attachments),
            kind=envelope.kind,
            created_at=created_at,
        )
        async with self._stores.writers.acquire() as writer:
            await append_message_and_touch_room(
                writer.conn,
                writer.message_store,
                writer.room_store,
                message,
            )
        return message

    async def _confirm(
        self, origin_sid: str, envelope: OutboundEnvelope, message: ChatMessage
    ) -> None:
        """向发送方连接下发确认事件；投递失败只记录日志，消息仍会经广播到达"""
        try:
            await self._hub.send_to(
                origin_sid,
                ServerEvent.MESSAGE_CONFIRMED,
                ConfirmEnvelope(
                    client_correlation_id=envelope.client_correlation_id,
                    canonical_message=message,
                ).to_wire(),
            )
        except Exception as e:
            log.warning(
                "message_confirm_delivery_failed",
                room_id=message.room_id,
                message_id=message.id,
                error_type=type(e).__name__,
            )

    async def _fail_storage(
        self,
        origin_sid: str | None,
        envelope: OutboundEnvelope,
        sender: UserInfo,
        original: Exception,
    ) -> NoReturn:
        """存储层异常：记录日志、通知发送方，并以 PersistenceError 抛出"""
        error = PersistenceError(envelope.room_id, original)
        log.error(
            "message_persist_failed",
            room_id=envelope.room_id,
            user_id=sender.user_id,
            error_type=type(original).__name__,
        )
        await self._notify_failure(origin_sid, envelope, error)
        raise error from original

    async def _notify_failure(
        self,
        origin_sid: str | None,
        envelope: OutboundEnvelope,
        error: ChatError,
    ) -> None:
        """只向发送方连接下发失败事件（不含底层异常细节）"""
        if origin_sid is None:
            return
        await self._hub.send_to(
            origin_sid,
            ServerEvent.MESSAGE_SAVE_FAILED,
            FailEnvelope(
                client_correlation_id=envelope.client_correlation_id,
                room_id=envelope.room_id,
                reason=error.code,
            ).to_wire(),
        )

    @asynccontextmanager
    async def _room_lock(self, room_id: str) -> AsyncIterator[None]:
        """持有房间锁，序列化同一房间的落库与广播"""
        entry = self._room_locks.get(room_id)
        if entry is None:
            entry = self._room_locks[room_id] = _RoomLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._room_locks.get(room_id) is entry:
                del self._room_locks[room_id]
