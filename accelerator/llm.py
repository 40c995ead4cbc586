"""Async LLM client used for RNA, task, initiative and roadblock generation."""
from __future__ import annotations

import json
import logging
import os
from typing import Any

from accelerator.errors import GenerationError
from accelerator.utils import extract_json_array

log = logging.getLogger(__name__)

MAX_TOKENS = 4096


class LLMClient:
    """Unified async LLM client supporting Anthropic and OpenAI."""

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ):
        self.provider = provider or os.environ.get("LLM_PROVIDER", "anthropic")
        self.model = model or os.environ.get("LLM_MODEL", "")
        self._api_key = api_key
        self._base_url = base_url
        self._client: Any = None
        self._init_client()

    def _init_client(self) -> None:
        if self.provider == "anthropic":
            import anthropic
            self.model = self.model or "claude-haiku-4-5-20251001"
            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key or os.environ.get("ANTHROPIC_API_KEY")
            )
        elif self.provider in ("openai", "openai_compatible"):
            import openai
            self.model = self.model or "gpt-4o-mini"
            kwargs: dict[str, Any] = {}
            key = self._api_key or os.environ.get("OPENAI_API_KEY")
            if key:
                kwargs["api_key"] = key
            url = self._base_url or os.environ.get("OPENAI_BASE_URL")
            if url:
                kwargs["base_url"] = url
            self._client = openai.AsyncOpenAI(**kwargs)
        else:
            raise ValueError(f"Unknown LLM provider: {self.provider!r}")

    async def generate_text(self, prompt: str) -> str:
        """Send a single user prompt and return the reply text."""
        try:
            if self.provider == "anthropic":
                response = await self._client.messages.create(
                    model=self.model,
                    max_tokens=MAX_TOKENS,
                    messages=[{"role": "user", "content": prompt}],
                )
                text = response.content[0].text if response.content else ""
            else:
                response = await self._client.chat.completions.create(
                    model=self.model,
                    max_tokens=MAX_TOKENS,
                    messages=[{"role": "user", "content": prompt}],
                )
                text = response.choices[0].message.content or ""
        except Exception as exc:
            raise GenerationError(f"LLM API call failed: {exc}", retryable=True) from exc

        text = text.strip()
        if not text:
            raise GenerationError("AI response did not contain any text", retryable=True)
        return text

    async def generate_records(self, prompt: str) -> list[dict[str, Any]]:
        """Ask for a JSON array of objects and return it parsed.

        Non-object entries are dropped. Raises ``GenerationError`` when the
        reply holds no parseable array; the raw reply is logged, not raised.
        """
        text = await self.generate_text(prompt)
        try:
            data = extract_json_array(text)
        except (ValueError, json.JSONDecodeError) as exc:
            log.error("Failed to parse AI response: %s", text[:2000])
            raise GenerationError("AI returned an invalid response") from exc
        if not isinstance(data, list):
            log.error("AI response is not a JSON array: %s", text[:2000])
            raise GenerationError("AI returned an invalid response")
        return [entry for entry in data if isinstance(entry, dict)]
