"""Cycles the bot's presence line through configured statuses."""

from __future__ import annotations

from luna_bot.config import ActivityStatus
from luna_bot.log import get_logger
from luna_bot.messenger.base import MessengerAdapter

logger = get_logger(__name__)


class ActivityRotator:
    def __init__(self, adapter: MessengerAdapter, statuses: list[ActivityStatus]):
        self._adapter = adapter
        self._statuses = statuses
        self._index = 0

    def next_status(self) -> ActivityStatus | None:
        if not self._statuses:
            return None
        status = self._statuses[self._index]
        self._index = (self._index + 1) % len(self._statuses)
        return status

    async def rotate(self) -> None:
        status = self.next_status()
        if status is None:
            return
        await self._adapter.set_activity(status.name, status.type)
        logger.debug("activity_updated", name=status.name, kind=status.type)
