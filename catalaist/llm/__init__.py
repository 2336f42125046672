"""LLM provider implementations for CatalAIst."""

from .base import ChatCompletion, ChatMessage, LLMProvider, TokenUsage, build_messages
from .bedrock_provider import BedrockProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "ChatCompletion",
    "ChatMessage",
    "LLMProvider",
    "TokenUsage",
    "build_messages",
    "BedrockProvider",
    "OpenAIProvider",
]
