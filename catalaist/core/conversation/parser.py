"""Parse structured payloads out of free-form LLM responses."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List

from ..errors import LLMResponseError
from ..models import ClarificationQuestion, InterimClassification, TransformationCategory

LOGGER = logging.getLogger(__name__)

MAX_QUESTIONS_PER_BATCH = 2

CORE_ATTRIBUTES = (
    "frequency",
    "business_value",
    "complexity",
    "risk",
    "user_count",
    "data_sensitivity",
    "data_source",
    "output_type",
    "judgment_required",
    "current_state",
)

ATTRIBUTE_ALIASES: Dict[str, tuple[str, ...]] = {
    "judgment_required": ("judgement_required", "judgement", "judgment"),
    "business_value": ("value", "impact", "priority"),
    "success_criteria": ("success",),
    "risks_constraints": ("risks", "constraints", "blockers"),
    "current_state": ("automation_level", "process_state"),
}

_CLOSERS = {"{": "}", "[": "]"}


def extract_json_block(text: str, start_pos: int) -> str | None:
    """
    Extract a complete JSON object or array starting at start_pos.
    Handles nesting and braces inside strings.
    """
    if start_pos >= len(text) or text[start_pos] not in _CLOSERS:
        return None

    stack: list[str] = []
    in_string = False
    escape_next = False

    for i in range(start_pos, len(text)):
        char = text[i]

        if escape_next:
            escape_next = False
            continue

        if char == "\\":
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif stack and char == stack[-1]:
            stack.pop()
            if not stack:
                return text[start_pos : i + 1]

    return None


def find_json(text: str, opener: str) -> Any:
    """Return the first decodable JSON value opened by `opener` ('{' or '[')."""
    pos = text.find(opener)
    while pos != -1:
        block = extract_json_block(text, pos)
        if block:
            try:
                return json.loads(block)
            except json.JSONDecodeError:
                LOGGER.debug("Discarding undecodable JSON candidate at %d", pos)
        pos = text.find(opener, pos + 1)
    kind = "JSON array" if opener == "[" else "JSON"
    raise LLMResponseError(f"No {kind} found in response", raw_response=text)


def parse_classification(content: str) -> InterimClassification:
    """Parse the classification JSON object from an LLM response."""
    data = find_json(content, "{")
    if not isinstance(data, dict):
        raise LLMResponseError("Classification response is not a JSON object", raw_response=content)

    category_raw = data.get("category")
    confidence = data.get("confidence")
    if not category_raw or isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise LLMResponseError("Invalid response format: missing required fields", raw_response=content)

    try:
        category = TransformationCategory(category_raw)
    except ValueError as exc:
        raise LLMResponseError(f"Invalid category: {category_raw}", raw_response=content) from exc

    if not 0 <= confidence <= 1:
        raise LLMResponseError(f"Invalid confidence score: {confidence}", raw_response=content)

    return InterimClassification(
        category=category,
        confidence=float(confidence),
        rationale=str(data.get("rationale") or ""),
        category_progression=str(data.get("categoryProgression") or data.get("category_progression") or ""),
        future_opportunities=str(data.get("futureOpportunities") or data.get("future_opportunities") or ""),
    )


def parse_questions(content: str, limit: int = MAX_QUESTIONS_PER_BATCH) -> List[ClarificationQuestion]:
    """Parse a JSON array of {question, purpose} objects."""
    data = find_json(content, "[")
    if not isinstance(data, list):
        raise LLMResponseError("Response is not an array", raw_response=content)

    questions: List[ClarificationQuestion] = []
    for item in data:
        if isinstance(item, dict) and isinstance(item.get("question"), str) and item["question"].strip():
            questions.append(
                ClarificationQuestion(
                    question=item["question"].strip(),
                    purpose=str(item.get("purpose") or "General clarification"),
                )
            )
        elif isinstance(item, str) and item.strip():
            questions.append(ClarificationQuestion(question=item.strip()))
    return questions[:limit]


def parse_attributes(content: str, extra_keys: Iterable[str] = ()) -> Dict[str, Dict[str, str]]:
    """
    Parse extracted attributes into {name: {"value", "explanation"}}.

    Accepts nested objects or flat values; expected attributes the LLM
    omitted are filled with "unknown".
    """
    data = find_json(content, "{")
    if not isinstance(data, dict):
        raise LLMResponseError("Attribute response is not a JSON object", raw_response=content)

    result: Dict[str, Dict[str, str]] = {}
    consumed = set()
    for name in (*CORE_ATTRIBUTES, *extra_keys):
        key = name if data.get(name) is not None else _find_alias(name, data)
        if key is None:
            LOGGER.warning("Missing attribute %r in extraction response, defaulting to unknown", name)
            result[name] = {"value": "unknown", "explanation": "Insufficient information provided"}
            continue
        consumed.add(key)
        explanation = "Extracted from conversation" if key == name else "Extracted via alias"
        result[name] = _normalize_attribute(data[key], explanation)

    for key, value in data.items():
        if key not in result and key not in consumed and value is not None:
            result[key] = _normalize_attribute(value, "Additional extracted field")
    return result


def flatten_attributes(attributes: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce {"value", "explanation"} entries to bare values for rule evaluation."""
    flat: Dict[str, Any] = {}
    for name, entry in attributes.items():
        flat[name] = entry.get("value") if isinstance(entry, dict) else entry
    return flat


def _find_alias(name: str, data: Dict[str, Any]) -> str | None:
    for alias in ATTRIBUTE_ALIASES.get(name, ()):
        if data.get(alias) is not None:
            return alias
    return None


def _normalize_attribute(value: Any, default_explanation: str) -> Dict[str, str]:
    if isinstance(value, dict) and "value" in value:
        return {
            "value": str(value.get("value") or "unknown"),
            "explanation": str(value.get("explanation") or default_explanation),
        }
    return {"value": str(value), "explanation": default_explanation}
