"""RoomMessageStore -- 单个房间的本地有序消息视图

负责把本端乐观提交的消息与服务端权威消息对账：
- submit 立即追加 pending 条目，不等待网络
- on_confirmed 原位替换对应的 pending 条目，不按服务端时间重排
- on_broadcast_message 按消息 id 幂等追加
- on_failed 原位标记失败，retry 以新关联 ID 在队尾重新提交

确认与广播都可能把同一条消息送达发送方，二者对账到同一条目。
"""

import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

import structlog
from campuschat.core.models import (
    AttachmentRef,
    ChatMessage,
    MessageKind,
    OutboundEnvelope,
)

from .models import ConfirmedMessage, FailedMessage, LocalMessage, PendingMessage

log = structlog.get_logger()

Dispatcher = Callable[[OutboundEnvelope], None]
StoreListener = Callable[["RoomMessageStore"], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_correlation_id() -> str:
    return str(uuid.uuid4())


class RoomMessageStore:
    """房间消息视图

    Args:
        room_id: 房间 ID
        sender_id: 本端用户 ID
        dispatch: 发送信封的回调（通常是 RealtimeTransport.send），不得阻塞
        correlation_id_factory: 关联 ID 生成器
        clock: 本地展示时间来源
    """

    def __init__(
        self,
        room_id: str,
        sender_id: str,
        dispatch: Dispatcher,
        correlation_id_factory: Callable[[], str] = _new_correlation_id,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.room_id = room_id
        self.sender_id = sender_id
        self._dispatch = dispatch
        self._new_id = correlation_id_factory
        self._clock = clock
        self._entries: list[LocalMessage] = []
        self._listeners: list[StoreListener] = []

    @property
    def messages(self) -> tuple[LocalMessage, ...]:
        """当前有序视图快照"""
        return tuple(self._entries)

    def add_listener(self, listener: StoreListener) -> Callable[[], None]:
        """注册变更监听器，返回注销函数"""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def submit(
        self,
        body: str | None = None,
        attachments: Iterable[AttachmentRef] = (),
        kind: MessageKind = MessageKind.TEXT,
    ) -> str:
        """乐观提交一条消息

        pending 条目先进入视图，再交给传输层发送；从不抛出发送相关异常，
        失败结果经 on_failed 异步回传。

        Returns:
            新生成的 client_correlation_id
        """
        pending = PendingMessage(
            client_correlation_id=self._new_id(),
            room_id=self.room_id,
            sender_id=self.sender_id,
            body=body,
            attachments=tuple(attachments),
            kind=kind,
            local_created_at=self._clock(),
        )
        self._entries.append(pending)
        self._notify()

        envelope = OutboundEnvelope(
            room_id=self.room_id,
            body=pending.body,
            attachments=list(pending.attachments),
            kind=pending.kind,
            client_correlation_id=pending.client_correlation_id,
        )
        try:
            self._dispatch(envelope)
        except Exception as e:
            # 条目保持 pending，等待重连后的结果事件或手动重试
            log.warning(
                "message_dispatch_failed",
                room_id=self.room_id,
                client_correlation_id=pending.client_correlation_id,
                error_type=type(e).__name__,
            )
        return pending.client_correlation_id

    def on_confirmed(self, client_correlation_id: str, canonical: ChatMessage) -> bool:
        """发送方确认：原位替换 pending 条目

        若广播先到并已追加了同 id 的副本，则移除该副本，保证只剩一条。

        Returns:
            True 如果找到并替换了 pending 条目
        """
        index = self._index_of(client_correlation_id, PendingMessage)
        if index is None:
            return False

        self._entries[index] = ConfirmedMessage(
            message=canonical,
            client_correlation_id=client_correlation_id,
        )
        self._entries = [
            entry
            for i, entry in enumerate(self._entries)
            if i == index
            or not (isinstance(entry, ConfirmedMessage) and entry.message.id == canonical.id)
        ]
        self._notify()
        return True

    def on_broadcast_message(self, canonical: ChatMessage) -> bool:
        """房间广播：按 id 幂等追加

        Returns:
            True 如果追加了新条目
        """
        if canonical.room_id != self.room_id or self._has_message(canonical.id):
            return False
        self._entries.append(ConfirmedMessage(message=canonical))
        self._notify()
        return True

    def on_failed(self, client_correlation_id: str, reason: str = "storage_error") -> bool:
        """发送方失败通知：原位标记为 failed（不移除）"""
        index = self._index_of(client_correlation_id, PendingMessage)
        if index is None:
            return False

        pending = self._entries[index]
        self._entries[index] = FailedMessage(
            client_correlation_id=pending.client_correlation_id,
            room_id=pending.room_id,
            sender_id=pending.sender_id,
            body=pending.body,
            attachments=pending.attachments,
            kind=pending.kind,
            local_created_at=pending.local_created_at,
            reason=reason,
        )
        self._notify()
        return True

    def retry(self, failed_correlation_id: str) -> str:
        """重试失败消息：移除旧条目，以新关联 ID 追加到队尾

        Raises:
            KeyError: 不存在对应的 failed 条目
        """
        index = self._index_of(failed_correlation_id, FailedMessage)
        if index is None:
            raise KeyError(failed_correlation_id)

        failed = self._entries.pop(index)
        return self.submit(
            body=failed.body,
            attachments=failed.attachments,
            kind=failed.kind,
        )

    def load_history(self, history: Iterable[ChatMessage]) -> int:
        """合并一页历史消息

        按 id 插入缺失的权威消息；权威消息按 seq 排在前，
        本地 pending / failed 条目保持相对顺序排在其后。

        Returns:
            新插入的条数
        """
        known = {e.message.id for e in self._entries if isinstance(e, ConfirmedMessage)}
        added = [
            ConfirmedMessage(message=m)
            for m in history
            if m.room_id == self.room_id and m.id not in known
        ]
        if not added:
            return 0

        confirmed = [e for e in self._entries if isinstance(e, ConfirmedMessage)]
        local_only = [e for e in self._entries if not isinstance(e, ConfirmedMessage)]
        merged = sorted(confirmed + added, key=lambda e: e.message.seq)
        self._entries = [*merged, *local_only]
        self._notify()
        return len(added)

    def get(self, key: str) -> LocalMessage | None:
        """按关联 ID 或消息 ID 查找条目"""
        for entry in self._entries:
            if entry.key == key or entry.client_correlation_id == key:
                return entry
        return None

    def _index_of(self, client_correlation_id: str, state: type) -> int | None:
        for i, entry in enumerate(self._entries):
            if isinstance(entry, state) and entry.client_correlation_id == client_correlation_id:
                return i
        return None

    def _has_message(self, message_id: str) -> bool:
        return any(
            isinstance(e, ConfirmedMessage) and e.message.id == message_id
            for e in self._entries
        )

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
