"""Data models for the conversation store and their on-disk JSON shape.

Persisted key names (``userName``, ``conversationHistory``...) are kept
stable so that documents written by earlier versions load unchanged. Every
field is optional on read.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from luna_bot.core.types import EntryType, utcnow


def _parse_time(value: Any, default: datetime) -> datetime:
    if not value:
        return default
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return default
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_time(value: datetime) -> str:
    return value.isoformat()


def new_entry_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ConversationEntry:
    timestamp: datetime
    type: EntryType
    user_message: str
    bot_response: str
    intent: Optional[str] = None
    entry_id: str = field(default_factory=new_entry_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": _format_time(self.timestamp),
            "type": self.type.value,
            "userMessage": self.user_message,
            "botResponse": self.bot_response,
            "intent": self.intent,
            "messageId": self.entry_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], now: datetime) -> ConversationEntry:
        try:
            entry_type = EntryType(data.get("type", EntryType.CHAT))
        except ValueError:
            entry_type = EntryType.CHAT
        # Older documents used numeric ids
        raw_id = data.get("messageId")
        return cls(
            timestamp=_parse_time(data.get("timestamp"), now),
            type=entry_type,
            user_message=data.get("userMessage", ""),
            bot_response=data.get("botResponse", ""),
            intent=data.get("intent"),
            entry_id=str(raw_id) if raw_id is not None else new_entry_id(),
        )


@dataclass(frozen=True)
class SpecialMoment:
    type: str
    level: int
    timestamp: datetime
    message: str

    @classmethod
    def level_up(cls, level: int, timestamp: datetime) -> SpecialMoment:
        return cls(
            type="level_up",
            level=level,
            timestamp=timestamp,
            message=f"Reached relationship level {level}! 💖",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "level": self.level,
            "timestamp": _format_time(self.timestamp),
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], now: datetime) -> SpecialMoment:
        return cls(
            type=data.get("type", "level_up"),
            level=int(data.get("level", 1)),
            timestamp=_parse_time(data.get("timestamp"), now),
            message=data.get("message", ""),
        )


@dataclass
class UserStats:
    total_messages: int = 0
    images_generated: int = 0
    intent_counts: dict[str, int] = field(default_factory=dict)
    relationship_level: int = 1
    special_moments: list[SpecialMoment] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalMessages": self.total_messages,
            "imagesGenerated": self.images_generated,
            "favoriteIntents": dict(self.intent_counts),
            "relationshipLevel": self.relationship_level,
            "specialMoments": [m.to_dict() for m in self.special_moments],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], now: datetime) -> UserStats:
        return cls(
            total_messages=int(data.get("totalMessages", 0)),
            images_generated=int(data.get("imagesGenerated", 0)),
            intent_counts={str(k): int(v) for k, v in (data.get("favoriteIntents") or {}).items()},
            relationship_level=int(data.get("relationshipLevel", 1)),
            special_moments=[
                SpecialMoment.from_dict(m, now) for m in data.get("specialMoments") or []
            ],
        )


@dataclass
class UserRecord:
    user_id: str
    display_name: str
    first_interaction: datetime
    last_interaction: datetime
    message_count: int = 0
    history: list[ConversationEntry] = field(default_factory=list)
    stats: UserStats = field(default_factory=UserStats)

    @classmethod
    def new(cls, user_id: str, display_name: str, now: datetime | None = None) -> UserRecord:
        now = now or utcnow()
        return cls(
            user_id=user_id,
            display_name=display_name,
            first_interaction=now,
            last_interaction=now,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "userName": self.display_name,
            "firstMessage": _format_time(self.first_interaction),
            "lastMessage": _format_time(self.last_interaction),
            "messageCount": self.message_count,
            "conversationHistory": [e.to_dict() for e in self.history],
            "userStats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, user_id: str, data: dict[str, Any], now: datetime) -> UserRecord:
        history = [
            ConversationEntry.from_dict(e, now) for e in data.get("conversationHistory") or []
        ]
        first = _parse_time(data.get("firstMessage"), now)
        return cls(
            user_id=str(data.get("userId", user_id)),
            display_name=data.get("userName", ""),
            first_interaction=first,
            last_interaction=_parse_time(data.get("lastMessage"), first),
            message_count=len(history),
            history=history,
            stats=UserStats.from_dict(data.get("userStats") or {}, now),
        )


@dataclass(frozen=True)
class StatsSnapshot:
    total_messages: int
    images_generated: int
    relationship_level: int
    favorite_intent: str
    days_together: int
    special_moments: tuple[SpecialMoment, ...]
    current_conversation_length: int
