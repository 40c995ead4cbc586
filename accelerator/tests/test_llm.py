"""Tests for the LLM client wrapper and the JSON helpers it relies on."""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from accelerator.errors import GenerationError
from accelerator.llm import MAX_TOKENS, LLMClient
from accelerator.utils import clip, extract_json_array, json_parse, strip_code_fences


def _anthropic_client(*replies):
    client = LLMClient(provider="anthropic", api_key="test-key")
    client._client = MagicMock()
    client._client.messages.create = AsyncMock(side_effect=[
        SimpleNamespace(content=[SimpleNamespace(text=r)]) for r in replies
    ])
    return client


class TestUtils:
    def test_extract_array_with_prose(self):
        assert extract_json_array('Sure! [{"a": 1}] Hope this helps.') == [{"a": 1}]

    def test_extract_array_missing(self):
        with pytest.raises(ValueError):
            extract_json_array("no brackets here")

    def test_json_parse_default(self):
        assert json_parse("not json") == {}
        assert json_parse(None, []) == []

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"x": 1}\n```') == '{"x": 1}'

    def test_clip(self):
        assert clip("  abcdef ", 3) == "abc"
        assert clip(None, 5) == ""


class TestLLMClient:
    def test_default_models(self):
        assert LLMClient(provider="anthropic", api_key="k").model == "claude-haiku-4-5-20251001"
        assert LLMClient(provider="openai", api_key="k").model == "gpt-4o-mini"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            LLMClient(provider="carrier-pigeon")

    @pytest.mark.asyncio
    async def test_generate_text(self):
        client = _anthropic_client("  hello  ")
        assert await client.generate_text("hi") == "hello"
        kwargs = client._client.messages.create.await_args.kwargs
        assert kwargs["max_tokens"] == MAX_TOKENS
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_openai_path(self):
        client = LLMClient(provider="openai", api_key="k")
        client._client = MagicMock()
        message = SimpleNamespace(content="[]")
        client._client.chat.completions.create = AsyncMock(
            return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)])
        )
        assert await client.generate_records("p") == []

    @pytest.mark.asyncio
    async def test_empty_reply_is_retryable(self):
        client = _anthropic_client("   ")
        with pytest.raises(GenerationError) as excinfo:
            await client.generate_text("hi")
        assert excinfo.value.retryable is True

    @pytest.mark.asyncio
    async def test_api_failure_is_wrapped(self):
        client = LLMClient(provider="anthropic", api_key="k")
        client._client = MagicMock()
        client._client.messages.create = AsyncMock(side_effect=RuntimeError("overloaded"))
        with pytest.raises(GenerationError, match="overloaded"):
            await client.generate_text("hi")

    @pytest.mark.asyncio
    async def test_records_drop_non_objects(self):
        client = _anthropic_client('```json\n[{"description": "a"}, 3, "x", {"description": "b"}]\n```')
        records = await client.generate_records("p")
        assert records == [{"description": "a"}, {"description": "b"}]

    @pytest.mark.asyncio
    async def test_invalid_json_raises_generic_error(self, caplog):
        client = _anthropic_client("[{broken")
        with pytest.raises(GenerationError, match="AI returned an invalid response"):
            await client.generate_records("p")
        assert "[{broken" in caplog.text

    @pytest.mark.asyncio
    async def test_no_array(self):
        client = _anthropic_client('{"description": "not a list"}')
        with pytest.raises(GenerationError):
            await client.generate_records("p")
