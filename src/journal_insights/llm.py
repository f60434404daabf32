"""Text-generation service used by the insight generators.

Generators only depend on the ``TextGenerator`` protocol; the Anthropic
adapter is the production implementation.
"""

from __future__ import annotations
import asyncio
import logging
import os
import re
from typing import Any, Protocol

import anthropic

from .errors import LLMError

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


_MODEL_MAP: dict[str, str] = {
    "sonnet": "claude-sonnet-4-6",
    "haiku": "claude-haiku-4-5-20251001",
    "opus": "claude-opus-4-6",
}

_DEFAULT_MODEL = "claude-haiku-4-5-20251001"


def resolve_model(model: str | None) -> str:
    """Resolve a short model name to an API model ID."""
    if model is None:
        return _DEFAULT_MODEL
    return _MODEL_MAP.get(model, model)


class AnthropicTextGenerator:
    """``TextGenerator`` backed by the Anthropic Messages API.

    API errors are retried up to ``max_attempts`` times with a fixed delay.
    An empty response is not retried.
    """

    def __init__(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
        timeout: float = 120,
        max_tokens: int = 2048,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        client: Any = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.model = resolve_model(model)
        self.max_tokens = max_tokens
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            api_key = (self._api_key or os.environ.get("ANTHROPIC_API_KEY", "")).strip()
            if not api_key:
                raise LLMError("ANTHROPIC_API_KEY not set")
            self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=self._timeout)
        return self._client

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        client = self._get_client()
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            logger.debug("Anthropic call model=%s attempt %d/%d",
                         self.model, attempt, self.max_attempts)
            try:
                response = await client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=system_prompt,
                    messages=[{"role": "user", "content": user_prompt}],
                )
            except anthropic.APIError as exc:
                last_error = exc
                logger.warning("Anthropic call failed (attempt %d/%d): %s",
                               attempt, self.max_attempts, exc)
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)
                continue

            text = "".join(
                block.text for block in response.content if block.type == "text"
            ).strip()
            if not text:
                raise LLMError(f"empty response from {self.model}")
            return text

        raise LLMError(
            f"Anthropic call failed after {self.max_attempts} attempts: {last_error}"
        ) from last_error


_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


def strip_json_fences(text: str) -> str:
    """Strip markdown code fences from LLM JSON output.

    Falls back to the outermost ``{...}`` or ``[...]``, whichever opens first.
    """
    text = text.strip()
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    candidates: list[tuple[int, str, str]] = []
    for start_char, end_char in (("{", "}"), ("[", "]")):
        pos = text.find(start_char)
        if pos != -1:
            candidates.append((pos, start_char, end_char))

    for start, _, end_char in sorted(candidates):
        end = text.rfind(end_char)
        if end > start:
            return text[start : end + 1]

    return text
