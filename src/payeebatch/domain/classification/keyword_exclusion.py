"""Keyword-based exclusion of obvious business payees.

A payee whose name contains one of the exclusion keywords as a whole word
is always classified as a Business, whatever the provider answered.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from payeebatch.domain.classification.value_objects import KeywordExclusion

logger = logging.getLogger(__name__)

KEYWORD_EXCLUSION_CONFIDENCE = 95

BUILTIN_EXCLUSION_KEYWORDS: dict[str, tuple[str, ...]] = {
    "business": (
        "LLC", "INC", "CORP", "LTD", "COMPANY", "CORPORATION", "LIMITED",
        "BUSINESS", "ENTERPRISE", "ENTERPRISES", "GROUP", "HOLDINGS",
        "INCORPORATED", "CO", "LLP", "PLLC", "PC",
    ),
    "financial": (
        "BANK", "CREDIT UNION", "SAVINGS", "LOAN", "MORTGAGE", "FINANCE",
        "FINANCIAL", "INVESTMENT", "SECURITIES", "INSURANCE", "TRUST",
    ),
    "government": (
        "DEPARTMENT", "DEPT", "GOVERNMENT", "FEDERAL", "STATE OF", "COUNTY",
        "CITY OF", "MUNICIPAL", "AGENCY", "AUTHORITY", "COMMISSION", "BOARD",
        "IRS", "TREASURY",
    ),
    "utility": (
        "ELECTRIC", "ENERGY", "POWER", "WATER", "GAS", "UTILITY", "UTILITIES",
        "TELECOM", "COMMUNICATIONS", "WIRELESS", "CABLE",
    ),
    "technology": (
        "SOFTWARE", "TECHNOLOGIES", "TECHNOLOGY", "SYSTEMS", "SOLUTIONS",
        "NETWORKS", "DIGITAL", "ONLINE",
    ),
    "healthcare": (
        "HOSPITAL", "MEDICAL", "CLINIC", "HEALTH", "HEALTHCARE", "PHARMACY",
        "DENTAL",
    ),
    "payroll": ("PAYROLL", "ADP", "PAYCHEX"),
    "automotive": ("MOTORS", "AUTOMOTIVE", "AUTO PARTS"),
    "insurance": ("GEICO", "ALLSTATE", "PROGRESSIVE", "STATE FARM"),
    "education": ("UNIVERSITY", "COLLEGE", "SCHOOL", "ACADEMY", "INSTITUTE"),
    "real_estate": ("REALTY", "PROPERTIES", "PROPERTY MANAGEMENT", "APARTMENTS"),
    "transportation": ("AIRLINES", "LOGISTICS", "FREIGHT", "SHIPPING", "TRANSPORT"),
}


def builtin_keywords() -> list[str]:
    """Flattened, de-duplicated built-in keyword list."""
    seen: dict[str, None] = {}
    for keywords in BUILTIN_EXCLUSION_KEYWORDS.values():
        for keyword in keywords:
            seen.setdefault(keyword, None)
    return list(seen)


class KeywordExclusionPolicy:
    """Whole-word, case-insensitive keyword matcher.

    Parameters
    ----------
    keywords
        Keyword list to use instead of the built-in catalogue.
    custom_keywords
        Extra keywords appended to the active list.
    """

    def __init__(
        self,
        keywords: Optional[Iterable[str]] = None,
        custom_keywords: Iterable[str] = (),
    ):
        base = list(keywords) if keywords is not None else builtin_keywords()
        active: dict[str, None] = {}
        for keyword in [*base, *custom_keywords]:
            cleaned = " ".join(keyword.split()).upper()
            if cleaned:
                active.setdefault(cleaned, None)
        self._keywords = tuple(active)
        self._patterns = [
            (kw, re.compile(rf"\b{re.escape(kw)}\b")) for kw in self._keywords
        ]

    @property
    def keywords(self) -> tuple[str, ...]:
        return self._keywords

    def check(self, payee_name: str) -> KeywordExclusion:
        if not payee_name or not payee_name.strip():
            return KeywordExclusion(
                is_excluded=False,
                reasoning="Empty payee name, keyword check skipped",
            )

        haystack = " ".join(payee_name.upper().split())
        matched = tuple(kw for kw, pattern in self._patterns if pattern.search(haystack))
        if not matched:
            return KeywordExclusion()

        logger.debug("Payee %r matched exclusion keywords %s", payee_name, matched)
        return KeywordExclusion(
            is_excluded=True,
            matched_keywords=matched,
            confidence=KEYWORD_EXCLUSION_CONFIDENCE,
            reasoning=f"Matched exclusion keyword(s): {', '.join(matched)}",
        )
