from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

import pytest

from luna_bot.config import StorageConfig
from luna_bot.core.types import Platform
from luna_bot.messenger.base import MessengerAdapter
from luna_bot.messenger.models import OutgoingMessage
from luna_bot.storage.conversation_store import ConversationStore
from luna_bot.storage.document import JsonDocument


class FakeClock:
    """Manually advanced clock shared by the key pool and the store."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class CountingDocument(JsonDocument):
    """JsonDocument that records how many writes reached disk."""

    def __init__(self, path, fail: bool = False):
        super().__init__(path)
        self.writes = 0
        self.fail = fail

    def write_text(self, text: str) -> None:
        if self.fail:
            raise OSError("disk full")
        self.writes += 1
        super().write_text(text)


class SlowFirstWriteDocument(CountingDocument):
    """Blocks its first write for ``delay`` seconds to overlap later writes."""

    def __init__(self, path, delay: float = 0.3):
        super().__init__(path)
        self.delay = delay

    def write_text(self, text: str) -> None:
        if self.writes == 0:
            time.sleep(self.delay)
        super().write_text(text)


class FakeAdapter(MessengerAdapter):
    def __init__(self):
        super().__init__({})
        self.sent: list[OutgoingMessage] = []
        self.typing: list[str] = []
        self.activities: list[tuple[str, str]] = []
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def send_message(self, message: OutgoingMessage) -> None:
        self.sent.append(message)

    async def send_typing_indicator(self, chat_id: str) -> None:
        self.typing.append(chat_id)

    async def set_activity(self, name: str, kind: str = "playing") -> None:
        self.activities.append((name, kind))

    @property
    def platform_name(self) -> str:
        return Platform.DISCORD


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage_config(tmp_path) -> StorageConfig:
    return StorageConfig(conversations_path=str(tmp_path / "conversations.json"))


@pytest.fixture
def document(storage_config) -> CountingDocument:
    return CountingDocument(storage_config.conversations_path)


@pytest.fixture
def store(document, storage_config, clock) -> ConversationStore:
    return ConversationStore(document, storage_config, clock=clock)
