"""Value objects for payee classification results."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

DEFAULT_PROCESSING_METHOD = "OpenAI Batch API"
PLACEHOLDER_REASONING = "No classification result found"


class Classification(str, Enum):
    """Payee type."""

    BUSINESS = "Business"
    INDIVIDUAL = "Individual"

    @classmethod
    def parse(cls, value: str) -> Classification:
        """Case-insensitive lookup, raising ValueError for unknown labels."""
        normalized = value.strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        msg = f"Unknown classification: {value!r}"
        raise ValueError(msg)


class ProcessingTier(str, Enum):
    """How a classification was produced."""

    RULE_BASED = "Rule-Based"
    NLP_BASED = "NLP-Based"
    AI_ASSISTED = "AI-Assisted"
    AI_POWERED = "AI-Powered"
    EXCLUDED = "Excluded"
    FAILED = "Failed"


def normalize_confidence(value: Any) -> int:
    """Convert a provider confidence to the canonical 0-100 integer.

    Integers are taken as percentages. Floats within [0, 1] are treated as
    ratios and scaled by 100; larger floats are rounded. The result is
    clamped to [0, 100].
    """
    if isinstance(value, bool) or value is None:
        msg = f"Invalid confidence: {value!r}"
        raise ValueError(msg)
    if isinstance(value, str):
        value = float(value.strip().rstrip("%"))
    if isinstance(value, float):
        if value != value:  # NaN
            msg = "Confidence is NaN"
            raise ValueError(msg)
        value = round(value * 100) if 0.0 <= value <= 1.0 else round(value)
    if not isinstance(value, int):
        msg = f"Invalid confidence: {value!r}"
        raise ValueError(msg)
    return max(0, min(100, value))


@dataclass(frozen=True)
class KeywordExclusion:
    """Outcome of the keyword-exclusion check for one payee name."""

    is_excluded: bool = False
    matched_keywords: tuple[str, ...] = ()
    confidence: int = 0
    reasoning: str = "No exclusion keywords matched"

    def to_dict(self) -> dict[str, Any]:
        return {
            "isExcluded": self.is_excluded,
            "matchedKeywords": list(self.matched_keywords),
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> KeywordExclusion:
        if not data:
            return cls()
        return cls(
            is_excluded=bool(data.get("isExcluded", False)),
            matched_keywords=tuple(data.get("matchedKeywords") or ()),
            confidence=int(data.get("confidence", 0)),
            reasoning=str(data.get("reasoning", "")),
        )


@dataclass(frozen=True)
class ClassificationRecord:
    """Canonical classification for one unique payee.

    ``confidence`` is always an integer percentage (0-100).
    ``warnings`` carries non-fatal validation findings, for example a
    Business result without an industry code.
    """

    payee_name: str
    classification: Classification
    confidence: int
    reasoning: str
    processing_tier: ProcessingTier
    processing_method: str = DEFAULT_PROCESSING_METHOD
    keyword_exclusion: KeywordExclusion = field(default_factory=KeywordExclusion)
    sic_code: Optional[str] = None
    sic_description: Optional[str] = None
    warnings: tuple[str, ...] = ()

    def __post_init__(self):
        if not 0 <= self.confidence <= 100:
            msg = f"Confidence out of range: {self.confidence}"
            raise ValueError(msg)

    @property
    def failed(self) -> bool:
        return self.processing_tier == ProcessingTier.FAILED

    @property
    def requires_review(self) -> bool:
        return self.confidence < 85

    @property
    def quality_score(self) -> str:
        if self.confidence >= 90:
            return "High"
        if self.confidence >= 70:
            return "Medium"
        return "Low"

    def with_warnings(self, *warnings: str) -> ClassificationRecord:
        if not warnings:
            return self
        return replace(self, warnings=self.warnings + tuple(warnings))

    @classmethod
    def placeholder(cls, payee_name: str) -> ClassificationRecord:
        """Record used for rows whose unique payee has no result."""
        return cls(
            payee_name=payee_name,
            classification=Classification.INDIVIDUAL,
            confidence=0,
            reasoning=PLACEHOLDER_REASONING,
            processing_tier=ProcessingTier.FAILED,
            processing_method="Placeholder",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "payeeName": self.payee_name,
            "classification": self.classification.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "processingTier": self.processing_tier.value,
            "processingMethod": self.processing_method,
            "keywordExclusion": self.keyword_exclusion.to_dict(),
            "sicCode": self.sic_code,
            "sicDescription": self.sic_description,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClassificationRecord:
        return cls(
            payee_name=data["payeeName"],
            classification=Classification(data["classification"]),
            confidence=int(data["confidence"]),
            reasoning=data.get("reasoning", ""),
            processing_tier=ProcessingTier(data["processingTier"]),
            processing_method=data.get("processingMethod", DEFAULT_PROCESSING_METHOD),
            keyword_exclusion=KeywordExclusion.from_dict(data.get("keywordExclusion")),
            sic_code=data.get("sicCode"),
            sic_description=data.get("sicDescription"),
            warnings=tuple(data.get("warnings") or ()),
        )
