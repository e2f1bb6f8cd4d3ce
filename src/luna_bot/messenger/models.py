"""Platform-neutral message models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from luna_bot.core.types import Platform


@dataclass(frozen=True, slots=True)
class Attachment:
    """Binary attachment (image, file, etc.)."""

    data: bytes
    media_type: str  # e.g. "image/jpeg", "image/png"
    filename: str = "attachment"


@dataclass(frozen=True, slots=True)
class EmbedField:
    name: str
    value: str
    inline: bool = True


@dataclass(frozen=True, slots=True)
class Embed:
    """Rich card; ``image_filename`` points at one of the message's attachments."""

    title: str
    description: str = ""
    color: int = 0xFF69B4
    fields: list[EmbedField] = field(default_factory=list)
    footer: Optional[str] = None
    image_filename: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    platform: Platform
    message_id: str
    chat_id: str
    user_id: str
    user_display_name: str
    text: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    chat_id: str
    text: str = ""
    reply_to_message_id: Optional[str] = None
    embed: Optional[Embed] = None
    attachments: list[Attachment] = field(default_factory=list)
