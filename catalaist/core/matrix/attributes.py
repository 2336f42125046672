"""Keyword heuristics for business attributes when LLM extraction is unavailable."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Dict, Sequence

if TYPE_CHECKING:
    from ..models import ClarificationExchange

_USER_COUNT = re.compile(r"(\d+)\s*(users?|people|employees)")


def extract_attributes_from_context(
    process_description: str,
    exchanges: Sequence[ClarificationExchange],
) -> Dict[str, Any]:
    """
    Infer decision-matrix attributes from raw conversation text.

    Args:
        process_description: The submitted process description
        exchanges: Clarification exchanges so far

    Returns:
        Flat attribute values keyed by attribute name
    """
    text = " ".join(
        [process_description, *(f"{e.question} {e.answer}" for e in exchanges)]
    ).lower()
    attributes: Dict[str, Any] = {}

    frequency = _first_hit(
        text,
        (
            (("daily", "every day"), "daily"),
            (("weekly", "every week"), "weekly"),
            (("monthly", "every month"), "monthly"),
            (("quarterly",), "quarterly"),
            (("yearly", "annually"), "yearly"),
        ),
    )
    if frequency:
        attributes["frequency"] = frequency

    attributes["business_value"] = _first_hit(
        text,
        (
            (("critical", "essential", "vital"), "critical"),
            (("high value", "important"), "high"),
            (("low value", "minor"), "low"),
        ),
    ) or "medium"

    attributes["complexity"] = _first_hit(
        text,
        (
            (("very complex", "extremely complex"), "very_high"),
            (("complex", "complicated"), "high"),
            (("simple", "straightforward"), "low"),
        ),
    ) or "medium"

    attributes["risk"] = _first_hit(
        text,
        (
            (("critical risk", "high risk"), "critical"),
            (("low risk", "safe"), "low"),
            (("risky", "risk"), "high"),
        ),
    ) or "medium"

    match = _USER_COUNT.search(text)
    if match:
        attributes["user_count"] = int(match.group(1))

    attributes["data_sensitivity"] = _first_hit(
        text,
        (
            (("confidential", "sensitive"), "confidential"),
            (("restricted", "classified"), "restricted"),
            (("internal",), "internal"),
        ),
    ) or "public"

    return attributes


def _first_hit(text: str, table: Sequence[tuple[tuple[str, ...], str]]) -> str | None:
    for needles, value in table:
        if any(needle in text for needle in needles):
            return value
    return None


def heuristic_attributes(
    process_description: str,
    exchanges: Sequence[ClarificationExchange],
) -> Dict[str, Dict[str, Any]]:
    """Keyword attributes in the same shape the LLM extraction returns."""
    values = extract_attributes_from_context(process_description, exchanges)
    return {
        name: {"value": value, "explanation": "Inferred from keywords in the conversation"}
        for name, value in values.items()
    }
