"""Gemini generateContent client used through the key rotation pool."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from luna_bot.config import GeminiConfig
from luna_bot.core.errors import MalformedResponseError, RemoteCallError
from luna_bot.log import get_logger

logger = get_logger(__name__)


class GeminiClient:
    """Thin async wrapper over the Gemini REST API.

    Every failure is raised as :class:`RemoteCallError` carrying the HTTP
    status (or ``None`` when no structured response arrived) so the key pool
    can classify it.
    """

    def __init__(self, config: GeminiConfig, client: httpx.AsyncClient | None = None):
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    @property
    def model_name(self) -> str:
        return self._config.model

    def _endpoint(self) -> str:
        base = self._config.base_url.rstrip("/")
        return f"{base}/models/{self._config.model}:generateContent"

    async def generate(self, prompt: str, api_key: str) -> str:
        """Send one prompt with ``api_key`` and return the first candidate's text."""
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        logger.debug("gemini_request", model=self._config.model, prompt_length=len(prompt))

        try:
            # httpx timeouts are per phase; this bounds the whole call
            async with asyncio.timeout(self._config.timeout):
                response = await self._client.post(
                    self._endpoint(),
                    params={"key": api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                    timeout=self._config.timeout,
                )
        except (TimeoutError, httpx.TimeoutException) as e:
            raise RemoteCallError(f"Gemini request timed out after {self._config.timeout}s") from e
        except httpx.TransportError as e:
            raise RemoteCallError(f"Gemini request failed: {e}") from e

        if response.status_code >= 400:
            raise RemoteCallError(
                f"Gemini returned HTTP {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("Gemini response is not JSON") from e
        return self._extract_text(data)

    @staticmethod
    def _extract_text(data: Any) -> str:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError("Invalid API response structure") from e
        if not isinstance(text, str):
            raise MalformedResponseError("Invalid API response structure")
        return text

    async def close(self) -> None:
        await self._client.aclose()
