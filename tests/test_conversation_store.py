"""Tests for ConversationStore writes, retention and statistics."""

from datetime import timedelta

from luna_bot.core.types import EntryType
from luna_bot.storage.conversation_store import apply_retention
from luna_bot.storage.models import ConversationEntry, UserRecord


def _append(store, n: int, user_id: str = "u1", intent: str | None = None) -> None:
    for i in range(n):
        store.append_entry(user_id, "Alice", f"msg {i}", f"reply {i}", intent)


class TestGetOrCreateRecord:
    def test_creates_fresh_record(self, store, clock):
        record = store.get_or_create_record("u1", "Alice")
        assert record.display_name == "Alice"
        assert record.first_interaction == clock()
        assert record.last_interaction == clock()
        assert record.message_count == 0
        assert record.history == []
        assert record.stats.relationship_level == 1
        assert record.stats.total_messages == 0

    def test_refreshes_display_name_and_keeps_first_interaction(self, store, clock):
        first = store.get_or_create_record("u1", "Alice")
        clock.advance(days=1)
        again = store.get_or_create_record("u1", "Alicia")
        assert again is first
        assert again.display_name == "Alicia"
        assert again.first_interaction == clock() - timedelta(days=1)


class TestAppendEntry:
    def test_first_append(self, store, clock):
        entry = store.append_entry("u1", "Alice", "hi", "hello!", "greetings")

        record = store.get_record("u1")
        assert record.message_count == 1
        assert record.stats.total_messages == 1
        assert record.stats.relationship_level == 1
        assert record.last_interaction == entry.timestamp == clock()
        assert record.history == [entry]
        assert entry.type is EntryType.CHAT
        assert record.stats.intent_counts == {"greetings": 1}

    def test_entry_ids_are_unique(self, store):
        _append(store, 20)
        ids = [e.entry_id for e in store.get_record("u1").history]
        assert len(set(ids)) == 20

    def test_null_intent_is_not_counted(self, store):
        store.append_entry("u1", "Alice", "hi", "hello!", None)
        assert store.get_record("u1").stats.intent_counts == {}

    def test_level_up_every_ten_messages(self, store):
        _append(store, 9)
        stats = store.get_record("u1").stats
        assert stats.relationship_level == 1
        assert stats.special_moments == []

        _append(store, 1)
        assert stats.relationship_level == 2
        assert len(stats.special_moments) == 1
        moment = stats.special_moments[0]
        assert moment.type == "level_up"
        assert moment.level == 2
        assert moment.message == "Reached relationship level 2! 💖"

        _append(store, 9)
        assert stats.total_messages == 19
        assert stats.relationship_level == 2
        assert len(stats.special_moments) == 1

        _append(store, 1)
        assert stats.relationship_level == 3
        assert [m.level for m in stats.special_moments] == [2, 3]

    def test_old_entries_evicted_on_next_append(self, store, clock):
        store.append_entry("u1", "Alice", "old", "old reply")
        clock.advance(days=8)
        store.append_entry("u1", "Alice", "new", "new reply")

        record = store.get_record("u1")
        assert [e.user_message for e in record.history] == ["new"]
        assert record.message_count == 1
        assert record.stats.total_messages == 2

    def test_entry_exactly_at_cutoff_is_kept(self, store, clock):
        store.append_entry("u1", "Alice", "edge", "reply")
        clock.advance(days=7)
        store.append_entry("u1", "Alice", "now", "reply")
        assert len(store.get_record("u1").history) == 2

    def test_history_capped_at_100_most_recent(self, store, clock):
        for i in range(101):
            clock.advance(seconds=1)
            store.append_entry("u1", "Alice", f"msg {i}", "reply")

        record = store.get_record("u1")
        assert len(record.history) == 100
        assert record.message_count == 100
        assert record.history[0].user_message == "msg 1"
        assert record.history[-1].user_message == "msg 100"
        assert record.stats.total_messages == 101

    def test_record_image_counts_and_tags_entry(self, store):
        entry = store.record_image("u1", "Alice", "a cat", "Generated image successfully")
        record = store.get_record("u1")
        assert record.stats.images_generated == 1
        assert entry.type is EntryType.IMAGE
        assert entry.intent == "image"
        assert record.stats.total_messages == 1


class TestApplyRetention:
    def test_age_then_cap(self, clock):
        record = UserRecord.new("u1", "Alice", clock())
        old = clock() - timedelta(days=10)
        record.history = [
            ConversationEntry(old, EntryType.CHAT, "old", "r"),
            *[ConversationEntry(clock(), EntryType.CHAT, f"m{i}", "r") for i in range(5)],
        ]

        removed = apply_retention(record, clock(), timedelta(days=7), max_entries=3)

        assert removed == 3
        assert [e.user_message for e in record.history] == ["m2", "m3", "m4"]
        assert record.message_count == 3


class TestSweep:
    def test_removes_only_expired_entries(self, store, clock):
        store.append_entry("stale", "Bob", "old", "r")
        clock.advance(days=3)
        store.append_entry("fresh", "Alice", "recent", "r")
        clock.advance(days=5)

        removed = store.sweep_all_users_retention()

        assert removed == 1
        assert store.get_record("stale").history == []
        assert store.get_record("stale").message_count == 0
        # user data survives
        assert store.get_record("stale").stats.total_messages == 1
        assert len(store.get_record("fresh").history) == 1

    def test_no_count_cap(self, store, clock):
        record = store.get_or_create_record("u1", "Alice")
        record.history = [
            ConversationEntry(clock(), EntryType.CHAT, f"m{i}", "r") for i in range(150)
        ]
        assert store.sweep_all_users_retention() == 0
        assert len(record.history) == 150
        assert record.message_count == 150


class TestRecentContext:
    def test_formats_last_entries_newest_last(self, store):
        store.append_entry("u1", "Alice", "one", "r1")
        store.append_entry("u1", "Alice", "two", "r2")
        store.append_entry("u1", "Alice", "three", "r3")

        context = store.get_recent_context("u1", limit=2)
        assert context == "User: two\nLuna: r2\n---\nUser: three\nLuna: r3"

    def test_unknown_user_or_empty_history(self, store):
        assert store.get_recent_context("nobody") == ""
        store.get_or_create_record("u1", "Alice")
        assert store.get_recent_context("u1") == ""

    def test_read_does_not_mutate(self, store):
        store.append_entry("u1", "Alice", "one", "r1")
        before = store.get_record("u1").to_dict()
        store.get_recent_context("u1", limit=5)
        assert store.get_record("u1").to_dict() == before


class TestStatisticsSnapshot:
    def test_unknown_user_has_no_data(self, store):
        assert store.get_statistics_snapshot("nobody") is None

    def test_snapshot_fields(self, store, clock):
        for intent in ["love", "flirty", "love", "love"]:
            store.append_entry("u1", "Alice", "x", "y", intent)
        store.record_image("u1", "Alice", "cat", "ok")
        clock.advance(days=3, hours=23)

        stats = store.get_statistics_snapshot("u1")
        assert stats.favorite_intent == "love"
        assert stats.total_messages == 5
        assert stats.images_generated == 1
        assert stats.relationship_level == 1
        assert stats.days_together == 3
        assert stats.current_conversation_length == 5
        assert stats.special_moments == ()

    def test_favorite_defaults_to_random(self, store):
        store.append_entry("u1", "Alice", "x", "y", None)
        assert store.get_statistics_snapshot("u1").favorite_intent == "random"

    def test_favorite_tie_breaks_lexically(self, store):
        for intent in ["love", "flirty", "love", "flirty"]:
            store.append_entry("u1", "Alice", "x", "y", intent)
        assert store.get_statistics_snapshot("u1").favorite_intent == "flirty"
