"""Model name tables for LLM providers.

All provider/model lookups happen here so the supported sets are easy to
maintain in one place.
"""

from typing import Dict, List

OPENAI_MODELS: List[str] = [
    "gpt-3.5-turbo",
    "gpt-4",
    "gpt-4-turbo",
    "gpt-4o",
    "gpt-4o-mini",
    "o1-preview",
    "o1-mini",
]

BEDROCK_MODELS: List[str] = [
    "anthropic.claude-3-5-sonnet-20241022-v2:0",
    "anthropic.claude-3-5-sonnet-20240620-v1:0",
    "anthropic.claude-3-5-haiku-20241022-v1:0",
    "anthropic.claude-3-opus-20240229-v1:0",
    "anthropic.claude-3-sonnet-20240229-v1:0",
    "anthropic.claude-3-haiku-20240307-v1:0",
    "anthropic.claude-v2:1",
    "anthropic.claude-v2",
    "anthropic.claude-instant-v1",
    "amazon.nova-pro-v1:0",
    "amazon.nova-lite-v1:0",
    "amazon.nova-micro-v1:0",
]

# Prefixes routed to each provider when the provider is not given explicitly.
PROVIDER_PREFIXES: Dict[str, tuple[str, ...]] = {
    "bedrock": ("anthropic.claude", "amazon.nova"),
    "openai": ("gpt-", "o1-", "o1"),
}

DEFAULT_PROVIDER = "openai"


def detect_provider(model: str) -> str:
    """
    Infer the provider for a model name.

    Args:
        model: The model identifier (e.g., "gpt-4o", "anthropic.claude-3")

    Returns:
        The provider name; unknown models default to OpenAI
    """
    for provider, prefixes in PROVIDER_PREFIXES.items():
        if model.startswith(prefixes):
            return provider
    return DEFAULT_PROVIDER


def supports_system_messages(model: str) -> bool:
    """o1 models reject the system role; the prompt is folded into the user turn."""
    return not model.startswith("o1")
