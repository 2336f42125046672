"""Shared fixtures: a scripted in-memory LLM provider and sample descriptions."""

from __future__ import annotations

import json
from typing import Dict, List, Sequence

import pytest

from catalaist.core.clarification import ClarificationService
from catalaist.core.classification import ClassificationService
from catalaist.core.conversation import ConversationController
from catalaist.llm.base import ChatCompletion, ChatMessage, LLMProvider, TokenUsage

RICH_DESCRIPTION = (
    "Every week our finance team of 12 people manually processes around 400 supplier invoices. "
    "The current process is paper based: invoices arrive by email, staff print them, key the data "
    "into our legacy ERP system and route each one through two approval steps with department "
    "managers. The workflow is slow and error prone, with frequent mistakes in amounts and a "
    "bottleneck at month end. Success for us means cutting processing time in half and reaching a "
    "target of under one percent errors. We estimate this would save roughly 30 hours per week and "
    "reduce late payment cost. The main risk is compliance with audit rules, and the finance "
    "director is the sponsor with an approved budget for the work this year."
)

POOR_DESCRIPTION = "We approve expense claims by hand."


def classification_json(category: str = "RPA", confidence: float = 0.7, rationale: str = "Rule based work") -> str:
    return json.dumps(
        {
            "category": category,
            "confidence": confidence,
            "rationale": rationale,
            "categoryProgression": "Not a candidate for elimination",
            "futureOpportunities": "AI Agent for exceptions",
        }
    )


def questions_json(*questions: str) -> str:
    return json.dumps([{"question": q, "purpose": "Clarify the process"} for q in questions])


def attributes_json(**values: str) -> str:
    return json.dumps({name: {"value": value, "explanation": "From answers"} for name, value in values.items()})


class FakeProvider(LLMProvider):
    """Returns canned responses per prompt kind; the last response of a script repeats."""

    name = "fake"

    _MARKERS = (
        ("attributes", "Extract key business attributes"),
        ("clarification", "generate clarifying questions"),
        ("classification", "classify business initiatives"),
    )

    def __init__(
        self,
        classification: Sequence[str] = (),
        clarification: Sequence[str] = (),
        attributes: Sequence[str] = (),
    ) -> None:
        self.scripts: Dict[str, List[str]] = {
            "classification": list(classification),
            "clarification": list(clarification),
            "attributes": list(attributes),
        }
        self.calls: Dict[str, List[List[ChatMessage]]] = {kind: [] for kind in self.scripts}

    def is_model_supported(self, model: str) -> bool:
        return True

    async def chat(self, messages: Sequence[ChatMessage], model: str) -> ChatCompletion:
        kind = self._kind(messages)
        self.calls[kind].append(list(messages))
        script = self.scripts[kind]
        if not script:
            raise AssertionError(f"No scripted {kind} response")
        content = script.pop(0) if len(script) > 1 else script[0]
        return ChatCompletion(content=content, model=model, usage=TokenUsage(total_tokens=42))

    def _kind(self, messages: Sequence[ChatMessage]) -> str:
        text = messages[0].content
        for kind, marker in self._MARKERS:
            if marker in text:
                return kind
        raise AssertionError(f"Unrecognized prompt: {text[:60]!r}")


ENV_VARS = (
    "OPENAI_API_KEY",
    "CATALAIST_MODEL",
    "CATALAIST_PROVIDER",
    "CATALAIST_DATA_DIR",
    "CATALAIST_VOICE_ENABLED",
    "LOG_LEVEL",
    "AWS_REGION",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Start from an empty environment; anything load_dotenv sets is undone afterwards."""
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def make_controller():
    """Factory building a controller around a FakeProvider."""

    def _make(provider: FakeProvider, model: str = "gpt-4", **kwargs) -> ConversationController:
        max_questions = kwargs.pop("max_questions", 5)
        classifier = ClassificationService(provider, model)
        clarifier = ClarificationService(provider, model, max_questions=max_questions)
        return ConversationController(classifier, clarifier, **kwargs)

    return _make
