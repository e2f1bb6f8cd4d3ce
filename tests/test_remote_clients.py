"""Tests for the Gemini and image clients against mocked HTTP transports."""

import asyncio
import json

import httpx
import pytest

from luna_bot.ai.gemini import GeminiClient
from luna_bot.ai.image import ImageGenerator
from luna_bot.config import GeminiConfig, ImageConfig
from luna_bot.core.errors import AllCredentialsFailedError, MalformedResponseError, RemoteCallError
from luna_bot.core.key_rotation import KeyRotationManager


def _gemini_ok(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _gemini(handler, timeout: float = 10.0) -> GeminiClient:
    config = GeminiConfig(
        api_keys=["k1"], base_url="https://gemini.test/v1beta", timeout=timeout
    )
    return GeminiClient(config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _images(handler, sources=None, timeout: float = 15.0) -> ImageGenerator:
    config = ImageConfig(
        sources=sources or ["https://one.test/{prompt}", "https://two.test/{prompt}"],
        style_suffix="anime style",
        timeout=timeout,
    )
    return ImageGenerator(config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestGeminiClient:
    @pytest.mark.asyncio
    async def test_returns_first_candidate_text(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_gemini_ok("hey cutie"))

        client = _gemini(handler)
        assert await client.generate("hello", "secret-1") == "hey cutie"

        assert seen["url"].path == "/v1beta/models/gemini-1.5-flash:generateContent"
        assert seen["url"].params["key"] == "secret-1"
        assert seen["body"] == {"contents": [{"parts": [{"text": "hello"}]}]}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 403, 429, 500])
    async def test_http_errors_carry_status(self, status):
        client = _gemini(lambda request: httpx.Response(status, json={"error": {}}))
        with pytest.raises(RemoteCallError) as exc_info:
            await client.generate("hello", "k")
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_missing_candidates_is_malformed(self):
        client = _gemini(lambda request: httpx.Response(200, json={"candidates": []}))
        with pytest.raises(MalformedResponseError) as exc_info:
            await client.generate("hello", "k")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self):
        client = _gemini(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(MalformedResponseError):
            await client.generate("hello", "k")

    @pytest.mark.asyncio
    async def test_timeout_has_no_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        client = _gemini(handler)
        with pytest.raises(RemoteCallError) as exc_info:
            await client.generate("hello", "k")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_slow_response_is_cut_off_at_the_call_deadline(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, json=_gemini_ok("late"))

        client = _gemini(handler, timeout=0.1)
        with pytest.raises(RemoteCallError) as exc_info:
            await client.generate("hello", "k")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_rotation_over_real_client(self, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["key"] == "k1":
                return httpx.Response(429, json={"error": {"status": "RESOURCE_EXHAUSTED"}})
            return httpx.Response(200, json=_gemini_ok("from k2"))

        client = _gemini(handler)
        manager = KeyRotationManager(["k1", "k2"], clock=clock)

        result = await manager.call_with_rotation(lambda key: client.generate("hi", key))

        assert result == "from k2"
        slot = manager.slots[0]
        assert slot.blocked is True
        assert (slot.blocked_until - clock()).total_seconds() == 300

    @pytest.mark.asyncio
    async def test_rotation_reports_last_failure(self, clock):
        client = _gemini(lambda request: httpx.Response(503))
        manager = KeyRotationManager(["k1", "k2"], clock=clock)

        with pytest.raises(AllCredentialsFailedError) as exc_info:
            await manager.call_with_rotation(lambda key: client.generate("hi", key))
        assert exc_info.value.last_error.status_code == 503


class TestImageGenerator:
    def test_prompt_scrubs_blocked_words_only(self):
        generator = _images(lambda request: httpx.Response(200))
        assert (
            generator.build_prompt("a HOT nude beach hotel")
            == "a beautiful beautiful beach hotel, anime style"
        )

    def test_source_urls_encode_prompt(self):
        generator = _images(lambda request: httpx.Response(200))
        urls = generator.source_urls("cat & dog")
        assert urls[0] == "https://one.test/cat%20%26%20dog%2C%20anime%20style"

    @pytest.mark.asyncio
    async def test_falls_back_to_next_source(self):
        hosts = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            if request.url.host == "one.test":
                return httpx.Response(502)
            return httpx.Response(200, content=b"\x89PNG")

        generator = _images(handler)
        assert await generator.generate("a cat") == b"\x89PNG"
        assert hosts == ["one.test", "two.test"]

    @pytest.mark.asyncio
    async def test_all_sources_failing_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("offline", request=request)

        generator = _images(handler)
        assert await generator.generate("a cat") is None

    @pytest.mark.asyncio
    async def test_slow_source_times_out_and_next_is_tried(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "one.test":
                await asyncio.sleep(1)
            return httpx.Response(200, content=b"img")

        generator = _images(handler, timeout=0.1)
        assert await generator.generate("a cat") == b"img"
