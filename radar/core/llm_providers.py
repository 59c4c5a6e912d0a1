"""LLM provider abstraction for chat/completion APIs (OpenAI GPT-4.1, etc.)."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Retry settings for rate limits
MAX_RETRIES = 3
INITIAL_DELAY = 2.0  # seconds
MAX_DELAY = 30.0  # seconds

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

CHAT_MODELS = ("gpt-4.1-nano", "gpt-4.1-mini", "gpt-4o-mini", "gpt-4o")

DEFAULT_DIGEST_MODEL = "gpt-4.1-mini"


@dataclass
class ChatResponse:
    content: str
    model: str
    tokens_input: int
    tokens_output: int
    finish_reason: str
    latency_ms: int


class LLMError(Exception):
    """Error during LLM API call."""

    def __init__(self, message: str, provider: str, retriable: bool = False):
        super().__init__(message)
        self.provider = provider
        self.retriable = retriable


class LLMProvider(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def model_id(self) -> str: ...

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        """Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content' keys.
            temperature: Sampling temperature (0-2).
            max_tokens: Max tokens to generate (None = model default).

        Raises:
            LLMError: If the API call fails.
        """
        ...


class OpenAIChatProvider(LLMProvider):
    def __init__(self, model: str = DEFAULT_DIGEST_MODEL, api_key: str = "", timeout: float = 60.0):
        if model not in CHAT_MODELS:
            raise ValueError(f"Unknown OpenAI model: {model}. Available: {list(CHAT_MODELS)}")
        self._model = model
        self._api_key = api_key
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "OpenAI"

    @property
    def model_id(self) -> str:
        return self._model

    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        if not self._api_key:
            raise LLMError("OPENAI_API_KEY is not set", provider=self.name)

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            delay = INITIAL_DELAY
            last_error: Exception | None = None

            for attempt in range(MAX_RETRIES):
                start_time = time.monotonic()
                request_body: dict[str, Any] = {
                    "model": self._model,
                    "messages": messages,
                    "temperature": temperature,
                }
                if max_tokens:
                    request_body["max_tokens"] = max_tokens

                try:
                    response = await client.post(
                        OPENAI_CHAT_URL,
                        headers={
                            "Authorization": f"Bearer {self._api_key}",
                            "Content-Type": "application/json",
                        },
                        json=request_body,
                    )
                    response.raise_for_status()
                    data = response.json()
                except httpx.HTTPStatusError as e:
                    last_error = e
                    status = e.response.status_code
                    if status == 429 and "quota" not in e.response.text.lower():
                        logger.warning(
                            f"Rate limit hit, attempt {attempt + 1}/{MAX_RETRIES}. "
                            f"Waiting {delay:.1f}s..."
                        )
                        await asyncio.sleep(delay)
                        delay = min(delay * 2, MAX_DELAY)
                        continue
                    if status == 401:
                        raise LLMError("OpenAI API key rejected", provider=self.name) from e
                    raise LLMError(
                        f"OpenAI API error: {status} - {e.response.text[:300]}",
                        provider=self.name,
                        retriable=status >= 500,
                    ) from e
                except httpx.RequestError as e:
                    raise LLMError(
                        f"OpenAI request failed: {type(e).__name__}",
                        provider=self.name,
                        retriable=True,
                    ) from e

                choice = data["choices"][0]
                usage = data.get("usage") or {}
                return ChatResponse(
                    content=choice["message"]["content"] or "",
                    model=data.get("model", self._model),
                    tokens_input=usage.get("prompt_tokens", 0),
                    tokens_output=usage.get("completion_tokens", 0),
                    finish_reason=choice.get("finish_reason", ""),
                    latency_ms=int((time.monotonic() - start_time) * 1000),
                )

            raise LLMError(
                f"Rate limit not cleared after {MAX_RETRIES} attempts",
                provider=self.name,
                retriable=True,
            ) from last_error


def parse_json_reply(text: str) -> dict[str, Any] | None:
    """Parse a JSON object from a model reply, tolerating ```json fences."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.startswith("json"):
            cleaned = cleaned[4:]
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None

