"""Per-user conversation history with retention, statistics, and debounced persistence."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

from luna_bot.config import StorageConfig
from luna_bot.core.types import EntryType, utcnow
from luna_bot.log import get_logger
from luna_bot.storage.document import JsonDocument
from luna_bot.storage.models import (
    ConversationEntry,
    SpecialMoment,
    StatsSnapshot,
    UserRecord,
)

logger = get_logger(__name__)

MESSAGES_PER_LEVEL = 10
DEFAULT_INTENT = "random"


def apply_retention(
    record: UserRecord,
    now: datetime,
    max_age: timedelta,
    max_entries: Optional[int] = None,
) -> int:
    """Evict entries older than ``max_age``, then cap to the newest ``max_entries``.

    Recomputes ``message_count`` and returns how many entries were removed.
    """
    cutoff = now - max_age
    original = len(record.history)
    kept = [entry for entry in record.history if entry.timestamp >= cutoff]
    if max_entries is not None and len(kept) > max_entries:
        kept = kept[-max_entries:]
    record.history = kept
    record.message_count = len(kept)
    return original - len(kept)


class ConversationStore:
    """In-memory map of user id to :class:`UserRecord`, backed by one JSON document.

    Every mutating call finishes before returning and then schedules a
    debounced flush, so timers and remote calls only interleave between
    operations.
    """

    def __init__(
        self,
        document: JsonDocument,
        settings: StorageConfig,
        bot_name: str = "Luna",
        clock: Callable[[], datetime] = utcnow,
    ):
        self._document = document
        self._settings = settings
        self._bot_name = bot_name
        self._clock = clock
        self._records: dict[str, UserRecord] = {}
        self._flush_handle: asyncio.TimerHandle | None = None
        self._flush_tasks: set[asyncio.Task[bool]] = set()
        self._write_lock = asyncio.Lock()

    @property
    def max_age(self) -> timedelta:
        return timedelta(days=self._settings.retention_days)

    @property
    def records(self) -> dict[str, UserRecord]:
        return self._records

    @property
    def flush_pending(self) -> bool:
        return self._flush_handle is not None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._records

    def get_record(self, user_id: str) -> UserRecord | None:
        return self._records.get(user_id)

    # --- Loading -----------------------------------------------------------

    def load(self) -> None:
        """Read the document into memory.

        A missing file starts an empty store and writes it out; an unreadable
        one is logged and replaced in memory by an empty store.
        """
        now = self._clock()
        try:
            data = self._document.read()
        except FileNotFoundError:
            logger.info("conversations_file_created", path=str(self._document.path))
            self._records = {}
            self.flush_sync()
            return
        except (OSError, ValueError) as e:
            logger.error(
                "conversations_load_failed", path=str(self._document.path), error=str(e)
            )
            self._records = {}
            return

        records: dict[str, UserRecord] = {}
        for user_id, raw in data.items():
            if not isinstance(raw, dict):
                logger.warning("conversation_record_skipped", user_id=user_id)
                continue
            try:
                records[str(user_id)] = UserRecord.from_dict(str(user_id), raw, now)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("conversation_record_skipped", user_id=user_id, error=str(e))
        self._records = records
        logger.info("conversations_loaded", users=len(records))

    # --- Mutations ---------------------------------------------------------

    def get_or_create_record(self, user_id: str, display_name: str) -> UserRecord:
        """Return the live record for ``user_id``, creating it on first contact."""
        record = self._records.get(user_id)
        if record is None:
            record = UserRecord.new(user_id, display_name, self._clock())
            self._records[user_id] = record
            logger.info("user_record_created", user_id=user_id)
        elif record.display_name != display_name:
            record.display_name = display_name
        return record

    def append_entry(
        self,
        user_id: str,
        display_name: str,
        user_message: str,
        bot_response: str,
        intent: Optional[str] = None,
        entry_type: EntryType = EntryType.CHAT,
    ) -> ConversationEntry:
        """Record one exchange and apply statistics and retention inline."""
        record = self.get_or_create_record(user_id, display_name)
        now = self._clock()

        entry = ConversationEntry(
            timestamp=now,
            type=entry_type,
            user_message=user_message,
            bot_response=bot_response,
            intent=intent,
        )
        record.history.append(entry)
        record.last_interaction = entry.timestamp
        record.message_count += 1

        stats = record.stats
        stats.total_messages += 1
        if intent:
            stats.intent_counts[intent] = stats.intent_counts.get(intent, 0) + 1

        new_level = stats.total_messages // MESSAGES_PER_LEVEL + 1
        if new_level > stats.relationship_level:
            stats.relationship_level = new_level
            stats.special_moments.append(SpecialMoment.level_up(new_level, now))
            logger.info("relationship_level_up", user_id=user_id, level=new_level)

        removed = apply_retention(record, now, self.max_age, self._settings.max_history)
        if removed:
            logger.info("history_trimmed", user_id=user_id, removed=removed)

        self.schedule_flush()
        return entry

    def record_image(
        self, user_id: str, display_name: str, prompt: str, bot_response: str
    ) -> ConversationEntry:
        """Count a generated image and log it as an ``image`` entry."""
        record = self.get_or_create_record(user_id, display_name)
        record.stats.images_generated += 1
        return self.append_entry(
            user_id, display_name, prompt, bot_response, intent="image", entry_type=EntryType.IMAGE
        )

    def sweep_all_users_retention(self) -> int:
        """Age out old entries for every user. Returns the number removed."""
        now = self._clock()
        total_removed = 0
        users_touched = 0
        for user_id, record in self._records.items():
            removed = apply_retention(record, now, self.max_age)
            if removed:
                total_removed += removed
                users_touched += 1
                logger.info("history_expired", user_id=user_id, removed=removed)

        if total_removed:
            logger.info("retention_sweep_done", removed=total_removed, users=users_touched)
            self.schedule_flush()
        else:
            logger.info("retention_sweep_nothing_to_remove")
        return total_removed

    # --- Reads -------------------------------------------------------------

    def get_recent_context(self, user_id: str, limit: int = 5) -> str:
        """Format the last ``limit`` exchanges as prompt context, oldest first."""
        record = self._records.get(user_id)
        if record is None or not record.history or limit <= 0:
            return ""
        return "\n---\n".join(
            f"User: {entry.user_message}\n{self._bot_name}: {entry.bot_response}"
            for entry in record.history[-limit:]
        )

    def get_statistics_snapshot(self, user_id: str) -> StatsSnapshot | None:
        """Read-only stats projection, or None when the user is unknown."""
        record = self._records.get(user_id)
        if record is None:
            return None

        stats = record.stats
        counts = stats.intent_counts
        # Ties resolve to the lexically first label
        favorite = max(sorted(counts), key=counts.__getitem__) if counts else DEFAULT_INTENT

        return StatsSnapshot(
            total_messages=stats.total_messages,
            images_generated=stats.images_generated,
            relationship_level=stats.relationship_level,
            favorite_intent=favorite,
            days_together=(self._clock() - record.first_interaction).days,
            special_moments=tuple(stats.special_moments),
            current_conversation_length=len(record.history),
        )

    # --- Persistence -------------------------------------------------------

    def schedule_flush(self) -> None:
        """(Re)arm the debounce timer; only the last call in a burst writes."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (offline CLI commands): callers flush explicitly.
            return
        if self._flush_handle is not None:
            self._flush_handle.cancel()
        self._flush_handle = loop.call_later(
            self._settings.debounce_seconds, self._on_debounce_elapsed
        )

    def cancel_pending_flush(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

    def _on_debounce_elapsed(self) -> None:
        self._flush_handle = None
        self.start_flush()

    def start_flush(self) -> asyncio.Task[bool]:
        """Run :meth:`flush` as a task that :meth:`drain` waits for."""
        task = asyncio.ensure_future(self.flush())
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)
        return task

    def _serialize(self) -> str:
        return JsonDocument.serialize(
            {user_id: record.to_dict() for user_id, record in self._records.items()}
        )

    async def flush(self) -> bool:
        """Write the whole store. Returns False if the write failed.

        The snapshot is taken on the event loop before any await, so the
        worker thread never sees a store that is being mutated.
        """
        text = self._serialize()
        async with self._write_lock:
            try:
                await asyncio.to_thread(self._document.write_text, text)
            except OSError as e:
                logger.error(
                    "conversations_save_failed", path=str(self._document.path), error=str(e)
                )
                return False
        logger.debug("conversations_saved", users=len(self._records))
        return True

    def flush_sync(self) -> bool:
        """Blocking write used at shutdown and by offline commands."""
        self.cancel_pending_flush()
        try:
            self._document.write_text(self._serialize())
        except OSError as e:
            logger.error(
                "conversations_save_failed", path=str(self._document.path), error=str(e)
            )
            return False
        logger.info("conversations_saved", users=len(self._records))
        return True

    async def drain(self) -> None:
        """Wait for background writes that are already running."""
        while self._flush_tasks:
            await asyncio.gather(*self._flush_tasks, return_exceptions=True)

    async def close(self) -> bool:
        """Final write at shutdown.

        Waits for background writes, then writes the current store while
        holding the write lock so no older snapshot can land after it.
        """
        self.cancel_pending_flush()
        await self.drain()
        async with self._write_lock:
            return self.flush_sync()
