"""AWS Bedrock chat provider using the Converse API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Sequence, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from ..core.errors import LLMProviderError
from ..core.model_mapping import BEDROCK_MODELS
from .base import ChatCompletion, ChatMessage, LLMProvider, TokenUsage

LOGGER = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
TIMEOUT_SECONDS = 30.0
MAX_ATTEMPTS = 3
INITIAL_RETRY_DELAY = 1.0
MAX_OUTPUT_TOKENS = 4096

_RETRYABLE_CODES = {
    "ThrottlingException",
    "ServiceUnavailableException",
    "InternalServerException",
    "ModelNotReadyException",
}


class BedrockProvider(LLMProvider):
    """Chat completions through AWS Bedrock with retry and timeout handling.

    Credentials come from the usual AWS chain (environment, shared config,
    instance role). boto3 is synchronous, so each call runs in a worker thread.
    """

    name = "bedrock"

    def __init__(
        self,
        region: str = DEFAULT_REGION,
        *,
        timeout: float = TIMEOUT_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = INITIAL_RETRY_DELAY,
        client: Any = None,
    ) -> None:
        self._client = client or boto3.client(
            "bedrock-runtime",
            region_name=region or DEFAULT_REGION,
            config=BotoConfig(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"total_max_attempts": 1, "mode": "standard"},
            ),
        )
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    def is_model_supported(self, model: str) -> bool:
        return any(model == known or model.startswith(known.split(":")[0]) for known in BEDROCK_MODELS)

    async def chat(self, messages: Sequence[ChatMessage], model: str) -> ChatCompletion:
        last_exc: Exception | None = None
        delay = self._retry_delay

        for attempt in range(1, self._max_attempts + 1):
            try:
                return await asyncio.to_thread(self._chat_once, messages, model)
            except ClientError as exc:
                last_exc = exc
                if not _is_retryable(exc):
                    break
            except (ReadTimeoutError, BotoConnectionError) as exc:
                last_exc = exc
            except BotoCoreError as exc:
                # Missing credentials or a malformed request will not succeed on retry.
                last_exc = exc
                break

            if attempt < self._max_attempts:
                LOGGER.warning(
                    "Bedrock attempt %d/%d failed (%s); retrying in %.1fs",
                    attempt,
                    self._max_attempts,
                    last_exc,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= 2

        raise _translate_error(last_exc) from last_exc

    def _chat_once(self, messages: Sequence[ChatMessage], model: str) -> ChatCompletion:
        system, turns = to_converse_messages(messages)
        request: Dict[str, Any] = {
            "modelId": model,
            "messages": turns,
            "inferenceConfig": {"maxTokens": MAX_OUTPUT_TOKENS},
        }
        if system:
            request["system"] = [{"text": system}]

        response = self._client.converse(**request)
        blocks = response.get("output", {}).get("message", {}).get("content", [])
        content = "\n".join(block["text"] for block in blocks if "text" in block)
        if not content:
            raise LLMProviderError("No content in Bedrock response")

        usage = response.get("usage", {})
        prompt_tokens = usage.get("inputTokens", 0)
        completion_tokens = usage.get("outputTokens", 0)
        return ChatCompletion(
            content=content,
            model=model,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=usage.get("totalTokens", prompt_tokens + completion_tokens),
            ),
        )


def to_converse_messages(messages: Sequence[ChatMessage]) -> Tuple[str, List[Dict[str, Any]]]:
    """Split out the system prompt; Bedrock takes it separately from the turns."""
    system_parts = []
    turns = []
    for message in messages:
        if message.role == "system":
            system_parts.append(message.content)
        else:
            turns.append({"role": message.role, "content": [{"text": message.content}]})
    return "\n\n".join(system_parts), turns


def _is_retryable(exc: ClientError) -> bool:
    code = exc.response.get("Error", {}).get("Code", "")
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
    return code in _RETRYABLE_CODES or status == 429 or status >= 500


def _translate_error(exc: Exception | None) -> LLMProviderError:
    if isinstance(exc, NoCredentialsError):
        return LLMProviderError("AWS credentials are required for Bedrock. Configure them and try again.")
    if isinstance(exc, ReadTimeoutError):
        return LLMProviderError("Classification request timed out. Please try again or flag for manual review.")
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        if code in ("AccessDeniedException", "UnrecognizedClientException"):
            return LLMProviderError("Access to Bedrock was denied. Please check your AWS credentials and model access.")
        if code == "ResourceNotFoundException":
            return LLMProviderError("The requested model is not available. Please select a different model.")
        if code == "ThrottlingException":
            return LLMProviderError("Bedrock rate limit exceeded. Please try again in a few moments.")
        if _is_retryable(exc):
            return LLMProviderError(
                "Bedrock service is currently unavailable. Please try again later or flag for manual review."
            )
    if isinstance(exc, BotoCoreError):
        return LLMProviderError(f"Bedrock request failed: {exc}")
    return LLMProviderError(f"LLM request failed: {exc}")
