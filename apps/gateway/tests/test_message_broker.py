"""MessageBroker 测试

测试内容：
1. 授权失败 / 校验失败 / 存储失败只通知发送方，不广播、不落库
2. 成功路径：先确认发送方，再广播给房间
3. 同一房间按落库完成顺序排序，created_at 单调不减
4. 不同房间互不阻塞（包括慢写入），房间锁用完即释放
5. 已读回执与输入提示
"""

import asyncio
from datetime import UTC, datetime, timedelta

import aiosqlite
import pytest
from campuschat.core.exceptions import (
    AuthorizationError,
    ChatError,
    MessageValidationError,
    PersistenceError,
)
from campuschat.core.models import OutboundEnvelope, ReadReceipt, TypingNotice
from campuschat.core.store import SqliteMessageStore
from campuschat.gateway.services.broker import MessageBroker


def _envelope(room_id: str = "r1", body: str | None = "hello", cid: str = "c-1") -> OutboundEnvelope:
    return OutboundEnvelope(room_id=room_id, body=body, client_correlation_id=cid)


def _connect(hub, sid, user, *rooms):
    hub.register_connection(sid, user)
    for room_id in rooms:
        hub.join(room_id, sid)


class TestRejections:
    """失败只通知发送方"""

    async def test_non_member_rejected(self, broker, hub, emitter, users, store_group):
        _connect(hub, "s-carol", users.carol, "r1")
        _connect(hub, "s-alice", users.alice, "r1")

        with pytest.raises(AuthorizationError):
            await broker.send_message(users.carol, _envelope(), origin_sid="s-carol")

        assert emitter.to("s-alice") == []
        assert emitter.to("s-carol") == [
            (
                "message-save-failed",
                {"clientCorrelationId": "c-1", "roomId": "r1", "reason": "not_room_member"},
            )
        ]
        assert await store_group.message_store.get_room_tail("r1") == (0, None)

    async def test_empty_message_rejected(self, broker, hub, emitter, users, store_group):
        _connect(hub, "s-alice", users.alice, "r1")
        _connect(hub, "s-bob", users.bob, "r1")

        with pytest.raises(MessageValidationError):
            await broker.send_message(users.alice, _envelope(body="  "), origin_sid="s-alice")

        assert emitter.to("s-bob") == []
        [(event, data)] = emitter.to("s-alice")
        assert event == "message-save-failed"
        assert data["reason"] == "invalid_message"
        assert await store_group.message_store.get_room_tail("r1") == (0, None)

    async def test_storage_failure_rolls_back_and_hides_detail(
        self, broker, hub, emitter, users, store_group, monkeypatch
    ):
        _connect(hub, "s-alice", users.alice, "r1")
        _connect(hub, "s-bob", users.bob, "r1")

        async def broken_append(self, message):
            raise aiosqlite.OperationalError("disk I/O error")

        monkeypatch.setattr(SqliteMessageStore, "append_message", broken_append)

        with pytest.raises(PersistenceError) as exc_info:
            await broker.send_message(users.alice, _envelope(), origin_sid="s-alice")

        assert isinstance(exc_info.value.original_error, aiosqlite.OperationalError)
        assert emitter.to("s-bob") == []
        [(event, data)] = emitter.to("s-alice")
        assert event == "message-save-failed"
        assert data == {"clientCorrelationId": "c-1", "roomId": "r1", "reason": "storage_error"}
        assert "disk" not in str(data)

    async def test_membership_lookup_failure_reports_storage_error(
        self, broker, hub, emitter, users, store_group, monkeypatch
    ):
        _connect(hub, "s-alice", users.alice, "r1")
        _connect(hub, "s-bob", users.bob, "r1")

        async def locked_is_member(room_id, user_id):
            raise aiosqlite.OperationalError("database is locked")

        monkeypatch.setattr(store_group.room_store, "is_member", locked_is_member)

        with pytest.raises(PersistenceError) as exc_info:
            await broker.send_message(users.alice, _envelope(), origin_sid="s-alice")

        assert isinstance(exc_info.value.original_error, aiosqlite.OperationalError)
        assert emitter.to("s-bob") == []
        assert emitter.to("s-alice") == [
            (
                "message-save-failed",
                {"clientCorrelationId": "c-1", "roomId": "r1", "reason": "storage_error"},
            )
        ]

    async def test_http_path_failure_emits_nothing(self, broker, emitter, users):
        with pytest.raises(AuthorizationError):
            await broker.send_message(users.carol, _envelope())
        assert emitter.calls == []


class TestSuccess:
    """成功路径"""

    async def test_confirm_then_broadcast(self, broker, hub, emitter, users):
        _connect(hub, "s-alice", users.alice, "r1")
        _connect(hub, "s-bob", users.bob, "r1")

        message = await broker.send_message(users.alice, _envelope(body="meet at 5"), origin_sid="s-alice")

        assert message.seq == 1
        assert message.body == "meet at 5"
        assert message.sender_display.name == "Alice"
        assert len(message.id) == 26

        alice_events = emitter.to("s-alice")
        assert [e for e, _ in alice_events] == ["message-confirmed", "new-message"]
        confirm = alice_events[0][1]
        assert confirm["clientCorrelationId"] == "c-1"
        assert confirm["canonicalMessage"] == message.to_wire()
        assert emitter.to("s-bob") == [("new-message", message.to_wire())]

    async def test_only_joined_connections_receive(self, broker, hub, emitter, users):
        _connect(hub, "s-alice", users.alice, "r1")
        # bob 在线但未加入 r1
        _connect(hub, "s-bob", users.bob)

        await broker.send_message(users.alice, _envelope(), origin_sid="s-alice")
        assert emitter.to("s-bob") == []

    async def test_broken_connection_does_not_stop_fanout(self, broker, hub, emitter, users):
        _connect(hub, "s-alice", users.alice, "r1")
        _connect(hub, "s-bob-1", users.bob, "r1")
        _connect(hub, "s-bob-2", users.bob, "r1")
        emitter.failing_sids.add("s-bob-1")

        await broker.send_message(users.alice, _envelope(), origin_sid="s-alice")
        assert [e for e, _ in emitter.to("s-bob-2")] == ["new-message"]

    async def test_room_pointer_updated(self, broker, users, store_group):
        message = await broker.send_message(users.alice, _envelope())
        room = await store_group.room_store.get_room("r1")
        assert room.last_message_id == message.id

    async def test_created_at_never_moves_backwards(self, store_group, hub, users):
        later = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)
        ticks = iter([later, later - timedelta(seconds=30)])
        broker = MessageBroker(store_group, hub, clock=lambda: next(ticks))

        first = await broker.send_message(users.alice, _envelope(cid="c-1"))
        second = await broker.send_message(users.bob, _envelope(cid="c-2"))

        assert second.seq == first.seq + 1
        assert second.created_at >= first.created_at


class TestOrdering:
    """同一房间顺序 = 落库完成顺序"""

    async def test_completion_order_not_submission_order(
        self, broker, hub, emitter, users, store_group, monkeypatch
    ):
        _connect(hub, "s-alice", users.alice, "r1")
        _connect(hub, "s-bob", users.bob, "r1")
        _connect(hub, "s-carol", users.carol)

        gate = asyncio.Event()
        original_is_member = store_group.room_store.is_member

        async def gated_is_member(room_id, user_id):
            if user_id == "u-alice":
                await gate.wait()
            return await original_is_member(room_id, user_id)

        monkeypatch.setattr(store_group.room_store, "is_member", gated_is_member)

        # A 先提交，但 B 先完成落库
        task_a = asyncio.create_task(
            broker.send_message(users.alice, _envelope(body="A", cid="c-a"), origin_sid="s-alice")
        )
        await asyncio.sleep(0)
        message_b = await broker.send_message(users.bob, _envelope(body="B", cid="c-b"), origin_sid="s-bob")
        gate.set()
        message_a = await task_a

        assert message_b.seq < message_a.seq
        assert message_b.created_at <= message_a.created_at
        for sid in ("s-alice", "s-bob"):
            bodies = [data["body"] for event, data in emitter.to(sid) if event == "new-message"]
            assert bodies == ["B", "A"]

        history = await store_group.message_store.list_messages("r1", limit=10)
        assert [m.body for m in history] == ["B", "A"]

    async def test_concurrent_sends_get_distinct_sequential_seq(self, broker, users):
        results = await asyncio.gather(
            *[
                broker.send_message(users.alice, _envelope(body=f"m{i}", cid=f"c-{i}"))
                for i in range(10)
            ]
        )
        assert sorted(m.seq for m in results) == list(range(1, 11))


class TestCrossRoom:
    """不同房间互不阻塞"""

    async def test_slow_write_does_not_block_other_room(
        self, broker, hub, emitter, users, monkeypatch
    ):
        _connect(hub, "s-alice", users.alice, "r1", "r2")

        release = asyncio.Event()
        entered = asyncio.Event()
        original_append = SqliteMessageStore.append_message

        async def slow_append(self, message):
            if message.room_id == "r1":
                entered.set()
                await release.wait()
            await original_append(self, message)

        monkeypatch.setattr(SqliteMessageStore, "append_message", slow_append)

        slow = asyncio.create_task(
            broker.send_message(users.alice, _envelope(room_id="r1", cid="c-x"), origin_sid="s-alice")
        )
        await entered.wait()

        fast = await asyncio.wait_for(
            broker.send_message(users.alice, _envelope(room_id="r2", cid="c-y"), origin_sid="s-alice"),
            timeout=2,
        )
        assert fast.seq == 1

        release.set()
        slow_message = await slow
        assert slow_message.room_id == "r1"
        confirmed = [data["clientCorrelationId"] for data, _ in emitter.events("message-confirmed")]
        assert confirmed == ["c-y", "c-x"]

    async def test_slow_tail_read_does_not_block_other_room(
        self, broker, hub, emitter, users, store_group, monkeypatch
    ):
        _connect(hub, "s-alice", users.alice, "r1", "r2")

        release = asyncio.Event()
        entered = asyncio.Event()
        original_tail = store_group.message_store.get_room_tail

        async def slow_tail(room_id):
            if room_id == "r1":
                entered.set()
                await release.wait()
            return await original_tail(room_id)

        monkeypatch.setattr(store_group.message_store, "get_room_tail", slow_tail)

        slow = asyncio.create_task(
            broker.send_message(users.alice, _envelope(room_id="r1", cid="c-x"), origin_sid="s-alice")
        )
        await entered.wait()

        fast = await asyncio.wait_for(
            broker.send_message(users.alice, _envelope(room_id="r2", cid="c-y"), origin_sid="s-alice"),
            timeout=2,
        )
        assert fast.room_id == "r2"
        confirmed = [data["clientCorrelationId"] for data, _ in emitter.events("message-confirmed")]
        assert confirmed == ["c-y"]

        release.set()
        await slow
        confirmed = [data["clientCorrelationId"] for data, _ in emitter.events("message-confirmed")]
        assert confirmed == ["c-y", "c-x"]


    async def test_room_locks_released_after_send(self, broker, users):
        await asyncio.gather(
            broker.send_message(users.alice, _envelope(room_id="r1", cid="c-1")),
            broker.send_message(users.bob, _envelope(room_id="r1", cid="c-2")),
            broker.send_message(users.alice, _envelope(room_id="r2", cid="c-3")),
        )
        assert broker._room_locks == {}

    async def test_room_lock_released_after_failure(self, broker, users, monkeypatch):
        async def broken_append(self, message):
            raise aiosqlite.OperationalError("disk I/O error")

        monkeypatch.setattr(SqliteMessageStore, "append_message", broken_append)
        with pytest.raises(PersistenceError):
            await broker.send_message(users.alice, _envelope())
        assert broker._room_locks == {}

class TestReadAndTyping:
    """已读回执与输入提示"""

    async def test_mark_read_broadcasts_once(self, broker, hub, emitter, users):
        _connect(hub, "s-alice", users.alice, "r1")
        message = await broker.send_message(users.alice, _envelope())

        receipt = ReadReceipt(room_id="r1", message_id=message.id)
        assert await broker.mark_read(users.bob, receipt) is True
        assert await broker.mark_read(users.bob, receipt) is False

        updates = emitter.events("message-read-update")
        assert len(updates) == 1
        assert updates[0][0]["userId"] == "u-bob"
        assert updates[0][0]["messageId"] == message.id

    async def test_mark_read_requires_membership(self, broker, users):
        message = await broker.send_message(users.alice, _envelope())
        with pytest.raises(AuthorizationError):
            await broker.mark_read(users.carol, ReadReceipt(room_id="r1", message_id=message.id))

    async def test_mark_read_unknown_message(self, broker, users):
        with pytest.raises(ChatError) as exc_info:
            await broker.mark_read(users.bob, ReadReceipt(room_id="r1", message_id="missing"))
        assert exc_info.value.code == "message_not_found"

    async def test_mark_read_storage_failure(self, broker, users, monkeypatch):
        message = await broker.send_message(users.alice, _envelope())

        async def broken_mark_read(self, message_id, user_id, read_at):
            raise aiosqlite.OperationalError("database is locked")

        monkeypatch.setattr(SqliteMessageStore, "mark_read", broken_mark_read)
        with pytest.raises(PersistenceError):
            await broker.mark_read(users.bob, ReadReceipt(room_id="r1", message_id=message.id))

    async def test_typing_skips_origin(self, broker, hub, emitter, users):
        _connect(hub, "s-alice", users.alice, "r1")
        _connect(hub, "s-bob", users.bob, "r1")

        delivered = await broker.relay_typing(users.alice, TypingNotice(room_id="r1"), "s-alice")

        assert delivered == 1
        assert emitter.to("s-alice") == []
        [(event, data)] = emitter.to("s-bob")
        assert event == "user-typing"
        assert data["userName"] == "Alice"

    async def test_typing_from_unjoined_connection_dropped(self, broker, hub, emitter, users):
        _connect(hub, "s-carol", users.carol)
        _connect(hub, "s-bob", users.bob, "r1")
        assert await broker.relay_typing(users.carol, TypingNotice(room_id="r1"), "s-carol") == 0
        assert emitter.calls == []
