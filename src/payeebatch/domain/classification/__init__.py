"""Classification domain: records, keyword exclusion and reconciliation."""

from payeebatch.domain.classification.exceptions import (
    IndustryCodeLostError,
    RowCountMismatchError,
)
from payeebatch.domain.classification.industry_codes import (
    INDUSTRY_CODE_PATTERN,
    ensure_code_preserved,
    validate_industry_code,
)
from payeebatch.domain.classification.keyword_exclusion import (
    BUILTIN_EXCLUSION_KEYWORDS,
    KEYWORD_EXCLUSION_CONFIDENCE,
    KeywordExclusionPolicy,
)
from payeebatch.domain.classification.local_classifier import (
    LOCAL_PROCESSING_METHOD,
    LocalHeuristicClassifier,
)
from payeebatch.domain.classification.raw_result import (
    ParsedError,
    ParsedOk,
    ParsedResult,
    parse_raw_result,
)
from payeebatch.domain.classification.reconciler import ClassificationReconciler
from payeebatch.domain.classification.value_objects import (
    Classification,
    ClassificationRecord,
    KeywordExclusion,
    ProcessingTier,
    normalize_confidence,
)

__all__ = [
    "BUILTIN_EXCLUSION_KEYWORDS",
    "INDUSTRY_CODE_PATTERN",
    "KEYWORD_EXCLUSION_CONFIDENCE",
    "LOCAL_PROCESSING_METHOD",
    "Classification",
    "ClassificationReconciler",
    "ClassificationRecord",
    "IndustryCodeLostError",
    "KeywordExclusion",
    "KeywordExclusionPolicy",
    "LocalHeuristicClassifier",
    "ParsedError",
    "ParsedOk",
    "ParsedResult",
    "ProcessingTier",
    "RowCountMismatchError",
    "ensure_code_preserved",
    "normalize_confidence",
    "parse_raw_result",
    "validate_industry_code",
]
