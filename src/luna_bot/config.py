"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


class DiscordConfig(BaseModel):
    token: str
    chat_channel_id: str = ""
    image_channel_id: str = ""

    @field_validator("chat_channel_id", "image_channel_id", mode="before")
    @classmethod
    def _channel_id_as_str(cls, value: object) -> str:
        # YAML reads unquoted snowflakes as ints
        return "" if value is None else str(value)


class GeminiConfig(BaseModel):
    api_keys: list[str] = Field(default_factory=list)
    model: str = "gemini-1.5-flash"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = 10.0

    @field_validator("api_keys", mode="before")
    @classmethod
    def _drop_unset_keys(cls, keys: object) -> list[str]:
        """Drop blank keys and ``${VAR}`` placeholders whose variable was never set."""
        if keys is None:
            return []
        if isinstance(keys, str):
            keys = [keys]
        cleaned = []
        for key in keys:
            # An empty env var leaves a bare "- " list item, which YAML reads as null
            if key is None:
                continue
            key = str(key).strip()
            if key and not _ENV_VAR_PATTERN.fullmatch(key):
                cleaned.append(key)
        return cleaned


class ImageConfig(BaseModel):
    sources: list[str] = Field(
        default_factory=lambda: [
            "https://image.pollinations.ai/prompt/{prompt}?width=512&height=512&nologo=true&enhance=true",
            "https://source.unsplash.com/512x512/?{prompt}",
        ]
    )
    timeout: float = 15.0
    blocked_words: list[str] = Field(
        default_factory=lambda: ["sexy", "hot", "nude", "naked", "nsfw", "sexual"]
    )
    replacement_word: str = "beautiful"
    style_suffix: str = (
        "beautiful art, anime style, high quality, detailed, colorful, aesthetic, safe for work"
    )


class StorageConfig(BaseModel):
    conversations_path: str = "./data/conversations.json"
    retention_days: int = 7
    max_history: int = 100
    debounce_seconds: float = 2.0
    flush_interval_seconds: int = 300
    sweep_interval_seconds: int = 86400


class ActivityStatus(BaseModel):
    name: str
    type: str = "playing"  # "playing" | "watching" | "listening"


class ActivityConfig(BaseModel):
    interval_seconds: int = 30
    statuses: list[ActivityStatus] = Field(
        default_factory=lambda: [
            ActivityStatus(name="Being your loving girlfriend~ 💖"),
            ActivityStatus(name="Thinking about you~ 😘💕"),
            ActivityStatus(name="Waiting for your messages~ 🥰", type="watching"),
            ActivityStatus(name="Missing you so much~ 💔"),
            ActivityStatus(name="Dreaming about us~ 😍✨"),
            ActivityStatus(name="Your heart beating~ 💓", type="listening"),
            ActivityStatus(name="Love songs for you~ 🎵💕", type="listening"),
        ]
    )


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"
    data_dir: str = "./data"
    bot_name: str = "Luna"
    discord: DiscordConfig
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    images: ImageConfig = Field(default_factory=ImageConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    activity: ActivityConfig = Field(default_factory=ActivityConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = raw_data.get("data_dir", "./data")
    data_dir = _interpolate_env_vars(data_dir)

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated)

    return AppConfig(**data)
