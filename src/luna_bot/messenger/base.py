"""Chat platform seam: the handler only talks to a MessengerAdapter."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from luna_bot.log import get_logger
from luna_bot.messenger.models import IncomingMessage, OutgoingMessage

logger = get_logger(__name__)

MessageCallback = Callable[[IncomingMessage], Awaitable[None]]


class MessengerAdapter(ABC):
    """Delivers inbound messages to one callback and carries replies back out.

    Subclasses own the platform connection; ``dispatch`` is what they call
    for every message they accept.
    """

    def __init__(self, config: dict):
        self.config = config
        self._message_callback: MessageCallback | None = None

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def send_message(self, message: OutgoingMessage) -> None:
        """Send text, an embed or attachments, replying when ``reply_to_message_id`` is set."""
        ...

    @abstractmethod
    async def send_typing_indicator(self, chat_id: str) -> None:
        ...

    @abstractmethod
    async def set_activity(self, name: str, kind: str = "playing") -> None:
        """Replace the bot's presence line (``kind``: playing, watching, listening)."""
        ...

    @property
    @abstractmethod
    def platform_name(self) -> str:
        ...

    def on_message(self, callback: MessageCallback) -> None:
        self._message_callback = callback

    async def dispatch(self, message: IncomingMessage) -> bool:
        """Hand ``message`` to the registered callback.

        Returns False when nothing is registered or the callback raised; a
        failing handler never takes the platform connection down with it.
        """
        if self._message_callback is None:
            return False
        try:
            await self._message_callback(message)
        except Exception as e:
            logger.error(
                "message_dispatch_error",
                platform=self.platform_name,
                chat_id=message.chat_id,
                error=str(e),
            )
            return False
        return True
