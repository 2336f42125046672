"""Input validation for process descriptions and clarification answers."""

from __future__ import annotations

import re

MIN_DESCRIPTION_LENGTH = 10
MAX_DESCRIPTION_LENGTH = 10000
MAX_ANSWER_LENGTH = 5000

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def sanitize_input(text: str) -> str:
    """Strip control characters (keeping newlines and tabs) and surrounding whitespace."""
    return _CONTROL_CHARS.sub("", text).strip()


def validate_process_description(description: str) -> tuple[bool, str]:
    """Validate a sanitized process description."""
    if not description:
        return False, "Process description is required"
    if len(description) < MIN_DESCRIPTION_LENGTH:
        return False, f"Process description must be at least {MIN_DESCRIPTION_LENGTH} characters long"
    if len(description) > MAX_DESCRIPTION_LENGTH:
        return False, f"Process description must not exceed {MAX_DESCRIPTION_LENGTH:,} characters"
    return True, ""


def validate_answer(answer: str) -> tuple[bool, str]:
    """Validate a sanitized clarification answer."""
    if not answer:
        return False, "Answer cannot be empty"
    if len(answer) > MAX_ANSWER_LENGTH:
        return False, f"Answer must not exceed {MAX_ANSWER_LENGTH:,} characters"
    return True, ""
