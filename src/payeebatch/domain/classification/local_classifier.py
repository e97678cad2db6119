"""Deterministic offline classifier used when the provider is unavailable."""

from __future__ import annotations

import re
from typing import Sequence

from payeebatch.domain.classification.raw_result import ParsedOk
from payeebatch.domain.classification.reconciler import ClassificationReconciler
from payeebatch.domain.classification.value_objects import (
    Classification,
    ClassificationRecord,
    ProcessingTier,
)

LOCAL_PROCESSING_METHOD = "Local heuristic fallback"
MAX_LOCAL_CONFIDENCE = 85

_BUSINESS_HINTS = re.compile(
    r"\b(SERVICES?|STORE|SHOP|MARKET|RESTAURANT|CAFE|GRILL|PIZZA|HOTEL|"
    r"CONSULTING|PARTNERS|ASSOCIATES|SUPPLY|SUPPLIES|WHOLESALE|INDUSTRIES|"
    r"INTERNATIONAL|NATIONAL|AMERICA|USA|CENTER|STUDIO|DESIGN|MEDIA|"
    r"CONSTRUCTION|PLUMBING|ELECTRICAL|LANDSCAPING|CLEANING|REPAIR)\b",
)
_SPECIAL_CHARS = re.compile(r"[&@#/+]")
_DIGITS = re.compile(r"\d")


class LocalHeuristicClassifier:
    """Scores a payee name with simple lexical signals.

    The result goes through the same reconciler as provider output, so the
    keyword-exclusion rule and industry-code warnings apply unchanged. Records
    are tagged with ``LOCAL_PROCESSING_METHOD``.
    """

    def __init__(self, reconciler: ClassificationReconciler):
        self._reconciler = reconciler

    def classify(self, payee_name: str) -> ClassificationRecord:
        return self._reconciler.reconcile(
            self._score(payee_name),
            payee_name,
            processing_method=LOCAL_PROCESSING_METHOD,
            processing_tier=ProcessingTier.RULE_BASED,
        )

    def classify_many(self, payee_names: Sequence[str]) -> list[ClassificationRecord]:
        return [self.classify(name) for name in payee_names]

    def _score(self, payee_name: str) -> ParsedOk:
        name = " ".join(payee_name.split())
        upper = name.upper()
        words = upper.split()

        business = 0
        individual = 0
        signals: list[str] = []

        if _BUSINESS_HINTS.search(upper):
            business += 40
            signals.append("business term")
        if _DIGITS.search(name):
            business += 20
            signals.append("contains digits")
        if _SPECIAL_CHARS.search(name):
            business += 15
            signals.append("special characters")
        if len(words) > 3:
            business += 15
            signals.append("long name")
        if name.isupper() and len(name) > 4 and len(words) > 1:
            business += 5
        if len(words) in (2, 3) and all(w.isalpha() for w in words):
            individual += 45
            signals.append("personal name shape")
        if len(words) == 1 and len(name) > 12:
            business += 10

        if business > individual:
            classification = Classification.BUSINESS
            margin = business - individual
        else:
            classification = Classification.INDIVIDUAL
            margin = individual - business

        confidence = min(MAX_LOCAL_CONFIDENCE, 50 + margin // 2)
        reasoning = (
            f"Heuristic score business={business} individual={individual}"
            + (f" ({', '.join(signals)})" if signals else "")
        )
        return ParsedOk(
            classification=classification,
            confidence=confidence,
            reasoning=reasoning,
        )
