"""Detect and mask personal data before text reaches the LLM or storage.

Matches are replaced with numbered tokens per type ("[EMAIL_1]",
"[PHONE_2]"); the same value within one text always gets the same token.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

_EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

_CARD_PATTERNS = (
    # Visa
    re.compile(r"\b4\d{3}[-\s]?\d{4}[-\s]?\d{4}(?:[-\s]?\d{1,4})?\b"),
    # MasterCard
    re.compile(r"\b(?:5[1-5]\d{2}|2[2-7]\d{2})[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"),
    # Amex
    re.compile(r"\b3[47]\d{2}[-\s]?\d{6}[-\s]?\d{5}\b"),
    # Discover
    re.compile(r"\b6(?:011|5\d{2}|4[4-9]\d)[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"),
)

_SSN = re.compile(r"\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b")

_PHONE_PATTERNS = (
    # North American, optionally with a country code: +1 (555) 123-4567, 555.123.4567
    re.compile(r"(?<![\w+])(?:\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\w)"),
    # International: +44 20 7123 4567
    re.compile(r"(?<![\w+])\+\d{1,3}(?:[-.\s]?\d{1,4}){2,4}(?!\w)"),
)

MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15

TOKEN_LABELS = {
    "email": "EMAIL",
    "credit_card": "CARD",
    "ssn": "SSN",
    "phone": "PHONE",
}


@dataclass(frozen=True)
class PIIMatch:
    type: str
    value: str
    start: int
    end: int
    token: str


@dataclass(frozen=True)
class PIIScrubResult:
    text: str
    matches: Tuple[PIIMatch, ...] = ()

    @property
    def has_pii(self) -> bool:
        return bool(self.matches)

    @property
    def types(self) -> List[str]:
        return sorted({match.type for match in self.matches})


@dataclass
class _Tokenizer:
    counters: Dict[str, Dict[str, int]] = field(default_factory=dict)

    def token(self, kind: str, value: str) -> str:
        seen = self.counters.setdefault(kind, {})
        if value not in seen:
            seen[value] = len(seen) + 1
        return f"[{TOKEN_LABELS[kind]}_{seen[value]}]"


def scrub_pii(text: str) -> PIIScrubResult:
    """
    Replace emails, card numbers, social security numbers and phone numbers with tokens.

    Card numbers must pass the Luhn check and phone numbers must have 10-15
    digits. Earlier types win where matches overlap, in the order email, card,
    SSN, phone.

    Args:
        text: Free text from the user

    Returns:
        The scrubbed text plus every match, in text order
    """
    spans: List[Tuple[str, int, int]] = []

    def claim(kind: str, start: int, end: int) -> None:
        if any(start < taken_end and taken_start < end for _, taken_start, taken_end in spans):
            return
        spans.append((kind, start, end))

    for found in _EMAIL.finditer(text):
        claim("email", found.start(), found.end())
    for pattern in _CARD_PATTERNS:
        for found in pattern.finditer(text):
            if luhn_valid(found.group()):
                claim("credit_card", found.start(), found.end())
    for found in _SSN.finditer(text):
        claim("ssn", found.start(), found.end())
    for pattern in _PHONE_PATTERNS:
        for found in pattern.finditer(text):
            if MIN_PHONE_DIGITS <= _digit_count(found.group()) <= MAX_PHONE_DIGITS:
                claim("phone", found.start(), found.end())

    if not spans:
        return PIIScrubResult(text=text)

    tokenizer = _Tokenizer()
    matches = []
    for kind, start, end in sorted(spans, key=lambda span: span[1]):
        value = text[start:end]
        matches.append(PIIMatch(kind, value, start, end, tokenizer.token(kind, value)))

    pieces = []
    cursor = 0
    for match in matches:
        pieces.append(text[cursor:match.start])
        pieces.append(match.token)
        cursor = match.end
    pieces.append(text[cursor:])
    return PIIScrubResult(text="".join(pieces), matches=tuple(matches))


def describe_matches(matches: Sequence[PIIMatch]) -> List[Dict[str, str]]:
    """Audit-safe view of matches: type, token and a digest, never the value."""
    return [{"type": m.type, "token": m.token, "sha256": hash_pii(m.value)} for m in matches]


def luhn_valid(number: str) -> bool:
    digits = [int(char) for char in number if char.isdigit()]
    if not digits:
        return False
    total = 0
    for index, digit in enumerate(reversed(digits)):
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def hash_pii(value: str) -> str:
    """One-way SHA-256 digest for storing a reference to a value without the value."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _digit_count(value: str) -> int:
    return sum(char.isdigit() for char in value)
