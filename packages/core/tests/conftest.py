"""packages/core 测试配置 -- 核心层 fixture"""

from datetime import UTC, datetime

import pytest
from campuschat.core.models import ChatMessage, MessageKind, SenderDisplay, UserRole


@pytest.fixture
def make_message():
    """构造权威消息的工厂（seq / created_at 由调用方指定）"""

    def _make(
        message_id: str,
        room_id: str = "r1",
        seq: int = 1,
        body: str | None = "hello",
        created_at: datetime | None = None,
        sender_id: str = "u-alice",
    ) -> ChatMessage:
        return ChatMessage(
            id=message_id,
            room_id=room_id,
            seq=seq,
            sender_id=sender_id,
            sender_display=SenderDisplay(name="Alice", role=UserRole.STUDENT),
            body=body,
            kind=MessageKind.TEXT,
            created_at=created_at or datetime.now(UTC),
        )

    return _make
