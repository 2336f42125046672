"""OpenAI chat-completion provider."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from ..core.errors import LLMProviderError
from ..core.model_mapping import OPENAI_MODELS
from .base import ChatCompletion, ChatMessage, LLMProvider, TokenUsage, as_payload

LOGGER = logging.getLogger(__name__)

TIMEOUT_SECONDS = 30.0
MAX_ATTEMPTS = 3
INITIAL_RETRY_DELAY = 1.0


class OpenAIProvider(LLMProvider):
    """Chat completions through the OpenAI API with retry and timeout handling."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = TIMEOUT_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = INITIAL_RETRY_DELAY,
        client: Any = None,
    ) -> None:
        if not api_key and client is None:
            raise LLMProviderError("OpenAI API key is required")
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    def is_model_supported(self, model: str) -> bool:
        return model in OPENAI_MODELS

    async def chat(self, messages: Sequence[ChatMessage], model: str) -> ChatCompletion:
        last_exc: Exception | None = None
        delay = self._retry_delay

        for attempt in range(1, self._max_attempts + 1):
            try:
                return await self._chat_once(messages, model)
            except APIStatusError as exc:
                last_exc = exc
                # Client errors other than rate limiting will not succeed on retry.
                if exc.status_code < 500 and exc.status_code != 429:
                    break
            except (APITimeoutError, APIConnectionError) as exc:
                last_exc = exc

            if attempt < self._max_attempts:
                LOGGER.warning(
                    "OpenAI attempt %d/%d failed (%s); retrying in %.1fs",
                    attempt,
                    self._max_attempts,
                    last_exc,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= 2

        raise _translate_error(last_exc) from last_exc

    async def _chat_once(self, messages: Sequence[ChatMessage], model: str) -> ChatCompletion:
        completion = await self._client.chat.completions.create(
            model=model,
            messages=as_payload(messages),
        )
        choice = completion.choices[0] if completion.choices else None
        content = choice.message.content if choice and choice.message else None
        if not content:
            raise LLMProviderError("No content in OpenAI response")

        usage = completion.usage
        return ChatCompletion(
            content=content,
            model=completion.model,
            usage=TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(usage, "total_tokens", 0) or 0,
            ),
        )


def _translate_error(exc: Exception | None) -> LLMProviderError:
    if isinstance(exc, APITimeoutError):
        return LLMProviderError("Classification request timed out. Please try again or flag for manual review.")
    if isinstance(exc, APIStatusError):
        status = exc.status_code
        if status == 401:
            return LLMProviderError("Invalid OpenAI API key. Please check your credentials.")
        if status == 404:
            return LLMProviderError("The requested model is not available. Please select a different model.")
        if status == 429:
            return LLMProviderError("OpenAI API rate limit exceeded. Please try again in a few moments.")
        if status >= 500:
            return LLMProviderError(
                "OpenAI service is currently unavailable. Please try again later or flag for manual review."
            )
    return LLMProviderError(f"LLM request failed: {exc}")
