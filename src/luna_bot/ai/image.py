"""Prompt-to-image fetcher with ordered fallback sources."""

from __future__ import annotations

import asyncio
import re
from urllib.parse import quote

import httpx

from luna_bot.config import ImageConfig
from luna_bot.log import get_logger

logger = get_logger(__name__)


class ImageGenerator:
    """Fetches a generated image from the first source that answers."""

    def __init__(self, config: ImageConfig, client: httpx.AsyncClient | None = None):
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout, follow_redirects=True)
        words = "|".join(re.escape(w) for w in config.blocked_words)
        self._blocked = re.compile(rf"\b({words})\b", re.IGNORECASE) if words else None

    def build_prompt(self, prompt: str) -> str:
        """Swap blocked words and append the style suffix."""
        cleaned = prompt
        if self._blocked is not None:
            cleaned = self._blocked.sub(self._config.replacement_word, prompt)
        if self._config.style_suffix:
            return f"{cleaned}, {self._config.style_suffix}"
        return cleaned

    def source_urls(self, prompt: str) -> list[str]:
        encoded = quote(self.build_prompt(prompt), safe="")
        return [template.replace("{prompt}", encoded) for template in self._config.sources]

    async def generate(self, prompt: str) -> bytes | None:
        """Return image bytes, or None when every source failed."""
        for number, url in enumerate(self.source_urls(prompt), start=1):
            try:
                async with asyncio.timeout(self._config.timeout):
                    response = await self._client.get(url, timeout=self._config.timeout)
                response.raise_for_status()
            except TimeoutError:
                logger.warning("image_source_timeout", source=number, timeout=self._config.timeout)
                continue
            except httpx.HTTPError as e:
                logger.warning("image_source_failed", source=number, error=str(e))
                continue
            if not response.content:
                logger.warning("image_source_empty", source=number)
                continue
            logger.info("image_generated", source=number, size=len(response.content))
            return response.content

        logger.error("image_generation_failed", sources=len(self._config.sources))
        return None

    async def close(self) -> None:
        await self._client.aclose()
