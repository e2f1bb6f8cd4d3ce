"""Shared types and enumerations."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum


class Platform(StrEnum):
    DISCORD = "discord"


class EntryType(StrEnum):
    CHAT = "chat"
    IMAGE = "image"


class FailureKind(StrEnum):
    RATE_LIMITED = "rate_limited"
    FORBIDDEN = "forbidden"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    NETWORK = "network"


def utcnow() -> datetime:
    """Timezone-aware current time; the default clock for stores and key pools."""
    return datetime.now(timezone.utc)
