"""Payee name cleaning and normalization.

Two levels are provided:

- ``clean_payee_name`` produces the display name sent to the classifier:
  trimmed, payment prefixes/suffixes stripped and encoding artifacts fixed.
- ``normalize_payee_name`` produces the deduplication key: the cleaned name,
  case-folded, without punctuation, accents, titles or legal suffixes.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable, Optional

UNKNOWN_PAYEE = "UNKNOWN"

_MOJIBAKE = (
    ("â€™", "'"),
    ("â€˜", "'"),
    ("â€œ", '"'),
    ("â€\x9d", '"'),
    ("â€", '"'),
    ("Ã©", "é"),
    ("Ã¨", "è"),
    ("Ã±", "ñ"),
    ("\u00a0", " "),
)

_PAYMENT_PREFIX = re.compile(r"^(payment to|paid to|check to|pay to)\s+", re.IGNORECASE)
_PAYMENT_SUFFIX = re.compile(r"\s+(payment|check|invoice)$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s&]")
_STANDALONE_NUMBER = re.compile(r"\b\d+\b")

_TITLES = frozenset({"MR", "MRS", "MS", "MISS", "DR", "PROF", "SIR", "REV", "THE"})
_LEGAL_SUFFIXES = frozenset({
    "INC", "INCORPORATED", "LLC", "LTD", "LIMITED", "CORP", "CORPORATION",
    "CO", "COMPANY", "LLP", "PLLC", "PC", "PLC", "LP",
})
_PERSONAL_SUFFIXES = frozenset({"JR", "SR", "II", "III", "IV"})

PAYEE_COLUMN_PATTERNS = (
    "payee",
    "payee name",
    "payee_name",
    "vendor",
    "vendor name",
    "vendor_name",
    "supplier",
    "merchant",
    "name",
    "recipient",
    "beneficiary",
    "paid to",
    "company",
)


@dataclass(frozen=True)
class NormalizedName:
    value: str
    steps: tuple[str, ...]


def fix_encoding_artifacts(text: str) -> str:
    for broken, fixed in _MOJIBAKE:
        text = text.replace(broken, fixed)
    return text


def clean_payee_name(raw: Optional[str]) -> str:
    """Display-level cleanup. Returns '' for empty input."""
    if raw is None:
        return ""
    text = fix_encoding_artifacts(str(raw))
    text = _WHITESPACE.sub(" ", text).strip()
    text = _PAYMENT_PREFIX.sub("", text)
    text = _PAYMENT_SUFFIX.sub("", text)
    return text.strip()


def normalize_payee_name(raw: Optional[str]) -> NormalizedName:
    """Build the deduplication key for a payee name.

    Every transformation that changed the value is recorded in ``steps``.
    Input that normalizes to nothing yields ``UNKNOWN_PAYEE``.
    """
    steps: list[str] = []
    original = "" if raw is None else str(raw)

    text = clean_payee_name(original)
    if text != original:
        steps.append("cleaned")

    folded = "".join(
        c for c in unicodedata.normalize("NFKD", text) if not unicodedata.combining(c)
    )
    if folded != text:
        steps.append("removed accents")
    text = folded.upper()

    without_punct = _PUNCTUATION.sub(" ", text)
    if without_punct != text:
        steps.append("removed punctuation")
    text = _STANDALONE_NUMBER.sub(" ", without_punct)

    words = text.split()
    while words and words[0] in _TITLES:
        words.pop(0)
        steps.append("removed title")
    while len(words) > 1 and words[-1] in (_LEGAL_SUFFIXES | _PERSONAL_SUFFIXES):
        words.pop()
        steps.append("removed suffix")

    value = " ".join(words)
    if not value:
        steps.append("empty")
        value = UNKNOWN_PAYEE
    return NormalizedName(value=value, steps=tuple(steps))


def detect_payee_column(headers: Iterable[str]) -> Optional[str]:
    """Guess which header holds payee names.

    Exact (case-insensitive) pattern matches win over substring matches.
    """
    header_list = [h for h in headers if h is not None]
    lowered = {h: h.strip().lower() for h in header_list}

    for pattern in PAYEE_COLUMN_PATTERNS:
        for header, low in lowered.items():
            if low == pattern:
                return header
    for pattern in PAYEE_COLUMN_PATTERNS[:-3]:
        for header, low in lowered.items():
            if pattern in low:
                return header
    return None
