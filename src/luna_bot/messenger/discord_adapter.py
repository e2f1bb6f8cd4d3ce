"""Discord messenger adapter using discord.py v2+."""

from __future__ import annotations

import asyncio
import io
from datetime import datetime, timezone
from typing import Any

import discord
from discord.ext import commands

from luna_bot.core.types import Platform
from luna_bot.log import get_logger
from luna_bot.messenger.base import MessengerAdapter
from luna_bot.messenger.models import Embed, IncomingMessage, OutgoingMessage

logger = get_logger(__name__)

DISCORD_MESSAGE_LIMIT = 2000

_ACTIVITY_TYPES = {
    "playing": discord.ActivityType.playing,
    "watching": discord.ActivityType.watching,
    "listening": discord.ActivityType.listening,
    "competing": discord.ActivityType.competing,
}


class DiscordAdapter(MessengerAdapter):
    """Discord bot adapter using discord.py."""

    def __init__(self, config: dict):
        super().__init__(config)
        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True
        intents.emojis_and_stickers = True
        self._bot = commands.Bot(command_prefix="!", intents=intents)
        self._task: asyncio.Task[Any] | None = None
        self._ready = asyncio.Event()

        @self._bot.event
        async def on_ready() -> None:
            logger.info("discord_bot_ready", user=str(self._bot.user))
            self._ready.set()

        @self._bot.event
        async def on_message(message: discord.Message) -> None:
            if message.author.bot:
                return
            await self._on_discord_message(message)

        @self._bot.event
        async def on_error(event: str, *args: Any, **kwargs: Any) -> None:
            logger.exception("discord_client_error", discord_event=event)

    @property
    def platform_name(self) -> str:
        return Platform.DISCORD

    async def start(self) -> None:
        token = self.config.get("token", "")
        if not token:
            raise ValueError("Discord bot token not configured")

        self._task = asyncio.create_task(self._bot.start(token))
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=30)
        except asyncio.TimeoutError:
            logger.warning("discord_ready_timeout")

        logger.info("discord_adapter_started")

    async def stop(self) -> None:
        await self._bot.close()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except (asyncio.CancelledError, Exception):
                pass
        logger.info("discord_adapter_stopped")

    async def send_message(self, message: OutgoingMessage) -> None:
        channel = self._bot.get_channel(int(message.chat_id))
        if channel is None:
            try:
                channel = await self._bot.fetch_channel(int(message.chat_id))
            except discord.DiscordException:
                logger.error("discord_channel_not_found", chat_id=message.chat_id)
                return

        if not isinstance(channel, (discord.TextChannel, discord.DMChannel, discord.Thread)):
            return

        files = [
            discord.File(io.BytesIO(att.data), filename=att.filename)
            for att in message.attachments
        ]
        embed = self._build_embed(message.embed) if message.embed else None
        reference = (
            channel.get_partial_message(int(message.reply_to_message_id))
            if message.reply_to_message_id
            else None
        )

        text = message.text or ""
        first_chunk = text[:DISCORD_MESSAGE_LIMIT] or None
        kwargs: dict[str, Any] = {"content": first_chunk, "files": files}
        if embed is not None:
            kwargs["embed"] = embed
        if reference is not None:
            kwargs["reference"] = reference
            kwargs["mention_author"] = False
        await channel.send(**kwargs)

        text = text[DISCORD_MESSAGE_LIMIT:]
        while text:
            await channel.send(text[:DISCORD_MESSAGE_LIMIT])
            text = text[DISCORD_MESSAGE_LIMIT:]

    async def send_typing_indicator(self, chat_id: str) -> None:
        channel = self._bot.get_channel(int(chat_id))
        if channel and hasattr(channel, "typing"):
            await channel.typing()  # type: ignore[union-attr]

    async def set_activity(self, name: str, kind: str = "playing") -> None:
        activity = discord.Activity(
            type=_ACTIVITY_TYPES.get(kind, discord.ActivityType.playing), name=name
        )
        await self._bot.change_presence(activity=activity)

    def _build_embed(self, source: Embed) -> discord.Embed:
        embed = discord.Embed(
            title=source.title,
            description=source.description or None,
            color=source.color,
            timestamp=source.timestamp,
        )
        for f in source.fields:
            embed.add_field(name=f.name, value=f.value, inline=f.inline)
        if source.image_filename:
            embed.set_image(url=f"attachment://{source.image_filename}")
        if source.footer:
            icon = self._bot.user.display_avatar.url if self._bot.user else None
            embed.set_footer(text=source.footer, icon_url=icon)
        return embed

    async def _on_discord_message(self, message: discord.Message) -> None:
        if not self._message_callback:
            return

        text = message.content or ""
        if not text:
            return

        incoming = IncomingMessage(
            platform=Platform.DISCORD,
            message_id=str(message.id),
            chat_id=str(message.channel.id),
            user_id=str(message.author.id),
            user_display_name=message.author.display_name or message.author.name,
            text=text,
            timestamp=message.created_at or datetime.now(timezone.utc),
        )

        await self.dispatch(incoming)
