"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from luna_bot.ai.gemini import GeminiClient
from luna_bot.ai.handler import MessageHandler
from luna_bot.ai.image import ImageGenerator
from luna_bot.config import AppConfig
from luna_bot.core.key_rotation import KeyRotationManager
from luna_bot.log import get_logger
from luna_bot.messenger.base import MessengerAdapter
from luna_bot.services.activity import ActivityRotator
from luna_bot.services.scheduler import SchedulerService
from luna_bot.storage.conversation_store import ConversationStore
from luna_bot.storage.document import JsonDocument

logger = get_logger(__name__)


def build_store(config: AppConfig) -> ConversationStore:
    return ConversationStore(
        JsonDocument(config.storage.conversations_path),
        config.storage,
        bot_name=config.bot_name,
    )


class LunaBotApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig, adapter: MessengerAdapter | None = None):
        self.config = config
        self.store = build_store(config)
        self.key_manager = KeyRotationManager(config.gemini.api_keys)
        self.gemini = GeminiClient(config.gemini)
        self.images = ImageGenerator(config.images)
        self.scheduler = SchedulerService()
        self.adapter = adapter or self._create_adapter()
        self.activity = ActivityRotator(self.adapter, config.activity.statuses)
        self.handler = MessageHandler(
            adapter=self.adapter,
            key_manager=self.key_manager,
            gemini=self.gemini,
            images=self.images,
            store=self.store,
            chat_channel_id=config.discord.chat_channel_id,
            image_channel_id=config.discord.image_channel_id,
            bot_name=config.bot_name,
        )

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Conversations
        self.store.load()
        self.store.sweep_all_users_retention()

        # 2. Background jobs
        storage = self.config.storage
        await self.scheduler.start()
        self.scheduler.add_interval_job(
            storage.flush_interval_seconds, self._periodic_flush, job_id="conversation_flush"
        )
        self.scheduler.add_interval_job(
            storage.sweep_interval_seconds, self._retention_sweep, job_id="retention_sweep"
        )
        self.scheduler.add_interval_job(
            self.config.activity.interval_seconds, self.activity.rotate, job_id="activity_rotation"
        )

        # 3. Discord
        self.adapter.on_message(self.handler.handle)
        await self.adapter.start()
        await self.activity.rotate()

        if not len(self.key_manager):
            logger.warning("no_api_keys_configured")
        logger.info(
            "luna_bot_started",
            users=len(self.store),
            api_keys=len(self.key_manager),
            retention_days=storage.retention_days,
        )

    async def stop(self) -> None:
        """Gracefully shut down and write conversations one last time."""
        try:
            await self.adapter.stop()
        except Exception as e:
            logger.error("adapter_stop_error", error=str(e))

        await self.scheduler.stop()
        await self.store.close()
        await self.gemini.close()
        await self.images.close()
        logger.info("luna_bot_stopped")

    async def _periodic_flush(self) -> None:
        await self.store.start_flush()

    async def _retention_sweep(self) -> None:
        logger.info("scheduled_retention_sweep")
        self.store.sweep_all_users_retention()

    def _create_adapter(self) -> MessengerAdapter:
        from luna_bot.messenger.discord_adapter import DiscordAdapter

        return DiscordAdapter(self.config.discord.model_dump())
