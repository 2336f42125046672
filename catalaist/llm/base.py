"""Provider abstractions for chat-completion LLM calls."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from ..core.model_mapping import supports_system_messages

LOGGER = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    role: str  # "system", "user" or "assistant"
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatCompletion:
    """Normalized completion payload returned by providers."""

    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)


class LLMProvider(ABC):
    """Base interface for hosted chat-completion providers."""

    name: str = ""

    @abstractmethod
    async def chat(self, messages: Sequence[ChatMessage], model: str) -> ChatCompletion:
        """Run a single chat completion."""

    @abstractmethod
    def is_model_supported(self, model: str) -> bool:
        """Return True if this provider can serve the model."""


def as_payload(messages: Sequence[ChatMessage]) -> List[Dict[str, str]]:
    return [message.to_dict() for message in messages]


def build_messages(system_prompt: str, user_content: str, model: str) -> List[ChatMessage]:
    """System + user messages; models without a system role get the prompt prepended."""
    if not supports_system_messages(model):
        return [ChatMessage(role="user", content=f"{system_prompt}\n\n{user_content}")]
    return [
        ChatMessage(role="system", content=system_prompt),
        ChatMessage(role="user", content=user_content),
    ]
