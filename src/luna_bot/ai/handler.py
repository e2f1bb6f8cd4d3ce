"""Message handler: routes channel messages to chat, image, and admin replies."""

from __future__ import annotations

from luna_bot.ai import persona
from luna_bot.ai.gemini import GeminiClient
from luna_bot.ai.image import ImageGenerator
from luna_bot.core.errors import KeyRotationError
from luna_bot.core.key_rotation import KeyRotationManager, SlotStatus
from luna_bot.log import get_logger
from luna_bot.messenger.base import MessengerAdapter
from luna_bot.messenger.models import (
    Attachment,
    Embed,
    EmbedField,
    IncomingMessage,
    OutgoingMessage,
)
from luna_bot.storage.conversation_store import ConversationStore
from luna_bot.storage.models import StatsSnapshot

logger = get_logger(__name__)

CHAT_CONTEXT_TURNS = 3
STATS_LOGGED_RESPONSE = "Showed relationship statistics"
IMAGE_LOGGED_RESPONSE = "Generated image successfully"
IMAGE_FILENAME = "generated-image.png"


def format_key_status(report: list[SlotStatus], cursor: int) -> str:
    """Render the key pool for the ``api status`` command."""
    lines = ["🔑 **API Keys Status:**", ""]
    for slot in report:
        if slot.blocked:
            lines.append(
                f"🚫 Key {slot.number}: Blocked ({slot.seconds_remaining}s remaining, "
                f"{slot.consecutive_failures} errors)"
            )
        else:
            last_used = slot.last_used.strftime("%H:%M:%S") if slot.last_used else "Never"
            lines.append(f"✅ Key {slot.number}: Available (Last used: {last_used})")
    if not report:
        lines.append("No API keys configured.")
    lines.append("")
    lines.append(f"📊 Currently using: Key {cursor + 1}")
    return "\n".join(lines)


def build_stats_embed(display_name: str, bot_name: str, stats: StatsSnapshot) -> Embed:
    fields = [
        EmbedField("💌 Total Messages", str(stats.total_messages)),
        EmbedField("🖼️ Images Generated", str(stats.images_generated)),
        EmbedField("💖 Relationship Level", str(stats.relationship_level)),
        EmbedField("🌟 Favorite Vibe", stats.favorite_intent),
        EmbedField("📅 Days Together", str(stats.days_together)),
        EmbedField("✨ Special Moments", str(len(stats.special_moments))),
        EmbedField("💬 Current Conversation", f"{stats.current_conversation_length} messages"),
    ]
    if stats.special_moments:
        fields.append(
            EmbedField("🎉 Latest Achievement", stats.special_moments[-1].message, inline=False)
        )
    return Embed(
        title=f"💖 {display_name}'s Love Story with {bot_name} ✨",
        description="Our beautiful journey together~ 😘💕",
        fields=fields,
        footer="💕 Our love grows stronger every day! (Old messages auto-deleted after 7 days)",
    )


class MessageHandler:
    """Handles one inbound message end to end; failures become canned replies."""

    def __init__(
        self,
        adapter: MessengerAdapter,
        key_manager: KeyRotationManager,
        gemini: GeminiClient,
        images: ImageGenerator,
        store: ConversationStore,
        chat_channel_id: str,
        image_channel_id: str,
        bot_name: str = "Luna",
    ):
        self._adapter = adapter
        self._keys = key_manager
        self._gemini = gemini
        self._images = images
        self._store = store
        self._chat_channel_id = chat_channel_id
        self._image_channel_id = image_channel_id
        self._bot_name = bot_name

    async def handle(self, message: IncomingMessage) -> None:
        if message.chat_id == self._chat_channel_id:
            await self._handle_chat(message)
        elif message.chat_id == self._image_channel_id:
            await self._handle_image(message)

    async def _reply(self, message: IncomingMessage, **kwargs) -> None:
        await self._adapter.send_message(
            OutgoingMessage(
                chat_id=message.chat_id, reply_to_message_id=message.message_id, **kwargs
            )
        )

    async def _handle_chat(self, message: IncomingMessage) -> None:
        user_id = message.user_id
        name = message.user_display_name
        text = message.text

        try:
            await self._adapter.send_typing_indicator(message.chat_id)
            intent = persona.detect_intent(text)

            if intent == "cleanup" and "cleanup old" in text.lower():
                removed = self._store.sweep_all_users_retention()
                logger.info("manual_cleanup", user_id=user_id, removed=removed)
                await self._reply(
                    message,
                    text="🧹 Manual cleanup completed! Old messages (7+ days) have been removed~ 💕",
                )
                return

            if intent == "api_status":
                await self._reply(
                    message, text=format_key_status(self._keys.status_report(), self._keys.cursor)
                )
                return

            if intent == "stats":
                stats = self._store.get_statistics_snapshot(user_id)
                if stats is not None:
                    embed = build_stats_embed(name, self._bot_name, stats)
                    await self._reply(message, embed=embed)
                    self._store.append_entry(user_id, name, text, STATS_LOGGED_RESPONSE, intent)
                    return

            response = await self._chat_response(user_id, name, text)
            self._store.append_entry(user_id, name, text, response, intent)
            await self._reply(message, text=response)

        except Exception:
            logger.exception("chat_handler_error", user_id=user_id)
            await self._reply(message, text=persona.pick_apology())

    async def _chat_response(self, user_id: str, name: str, text: str) -> str:
        context = self._store.get_recent_context(user_id, CHAT_CONTEXT_TURNS)
        record = self._store.get_or_create_record(user_id, name)
        prompt = persona.build_chat_prompt(
            bot_name=self._bot_name,
            display_name=name,
            message=text,
            relationship_level=record.stats.relationship_level,
            total_messages=record.stats.total_messages,
            context=context,
        )

        async def _request(api_key: str) -> str:
            return await self._gemini.generate(prompt, api_key)

        try:
            return await self._keys.call_with_rotation(_request)
        except KeyRotationError as e:
            logger.error("chat_keys_unavailable", user_id=user_id, error=str(e))
            return persona.pick_response(persona.API_FAILED, name)

    async def _handle_image(self, message: IncomingMessage) -> None:
        try:
            await self._adapter.send_typing_indicator(message.chat_id)
            data = await self._images.generate(message.text)
            if data is None:
                await self._reply(message, text=persona.IMAGE_FAILED)
                return

            embed = Embed(
                title="💖 Here's your image gorgeous! ✨😘",
                description=f'*Generated with love: "{message.text}"*',
                color=0xFF1493,
                footer=f"💕 Made with love by {self._bot_name}",
                image_filename=IMAGE_FILENAME,
            )
            await self._reply(
                message,
                embed=embed,
                attachments=[Attachment(data=data, media_type="image/png", filename=IMAGE_FILENAME)],
            )
            self._store.record_image(
                message.user_id, message.user_display_name, message.text, IMAGE_LOGGED_RESPONSE
            )

        except Exception:
            logger.exception("image_handler_error", user_id=message.user_id)
            await self._reply(message, text=persona.IMAGE_ERROR)
