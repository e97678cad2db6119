"""Reconciliation of raw provider results into classification records."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping, Optional, Sequence, Union

from payeebatch.domain.classification.industry_codes import (
    ensure_code_preserved,
    validate_industry_code,
)
from payeebatch.domain.classification.keyword_exclusion import KeywordExclusionPolicy
from payeebatch.domain.classification.raw_result import (
    ParsedError,
    ParsedOk,
    ParsedResult,
    parse_raw_result,
)
from payeebatch.domain.classification.value_objects import (
    DEFAULT_PROCESSING_METHOD,
    Classification,
    ClassificationRecord,
    ProcessingTier,
)

logger = logging.getLogger(__name__)

RawResult = Union[str, bytes, Mapping[str, Any], ParsedOk, ParsedError, None]


class ClassificationReconciler:
    """Merges a raw provider result with the local business rules.

    The keyword-exclusion rule has priority over the provider: a matching
    payee is always a Business. Industry-code problems are attached as
    warnings. A payload that cannot be parsed yields a failed record.
    """

    def __init__(self, exclusion_policy: Optional[KeywordExclusionPolicy] = None):
        self._exclusion_policy = exclusion_policy or KeywordExclusionPolicy()

    @property
    def exclusion_policy(self) -> KeywordExclusionPolicy:
        return self._exclusion_policy

    def reconcile(
        self,
        raw_result: RawResult,
        payee_name: str,
        processing_method: str = DEFAULT_PROCESSING_METHOD,
        processing_tier: ProcessingTier = ProcessingTier.AI_POWERED,
    ) -> ClassificationRecord:
        parsed = (
            raw_result
            if isinstance(raw_result, (ParsedOk, ParsedError))
            else parse_raw_result(raw_result)
        )
        record = self._base_record(parsed, payee_name, processing_method, processing_tier)
        record = self._apply_keyword_exclusion(record)

        if isinstance(parsed, ParsedOk):
            ensure_code_preserved(
                parsed.sic_code,
                record.sic_code,
                stage="reconciliation",
                payee_name=payee_name,
            )

        return record.with_warnings(*validate_industry_code(record))

    def reconcile_batch(
        self,
        raw_results: Mapping[int, RawResult],
        unique_names: Sequence[str],
        processing_method: str = DEFAULT_PROCESSING_METHOD,
    ) -> list[ClassificationRecord]:
        """Reconcile one result per unique payee, keyed by unique index.

        Indexes without a raw result produce failed records, so the output
        always has ``len(unique_names)`` entries.
        """
        records = [
            self.reconcile(raw_results.get(index), name, processing_method)
            for index, name in enumerate(unique_names)
        ]
        failed = sum(1 for r in records if r.failed)
        if failed:
            logger.warning(
                "Reconciled %d payees, %d without a usable provider result",
                len(records),
                failed,
            )
        return records

    def _base_record(
        self,
        parsed: ParsedResult,
        payee_name: str,
        processing_method: str,
        processing_tier: ProcessingTier,
    ) -> ClassificationRecord:
        if isinstance(parsed, ParsedError):
            logger.info("Unusable result for payee %r: %s", payee_name, parsed.reason)
            return ClassificationRecord(
                payee_name=payee_name,
                classification=Classification.INDIVIDUAL,
                confidence=0,
                reasoning=f"Classification failed: {parsed.reason}",
                processing_tier=ProcessingTier.FAILED,
                processing_method=processing_method,
            )

        return ClassificationRecord(
            payee_name=payee_name,
            classification=parsed.classification,
            confidence=parsed.confidence,
            reasoning=parsed.reasoning,
            processing_tier=processing_tier,
            processing_method=processing_method,
            sic_code=parsed.sic_code,
            sic_description=parsed.sic_description,
        )

    def _apply_keyword_exclusion(
        self,
        record: ClassificationRecord,
    ) -> ClassificationRecord:
        exclusion = self._exclusion_policy.check(record.payee_name)
        if not exclusion.is_excluded:
            return replace(record, keyword_exclusion=exclusion)

        if record.failed:
            # Business by rule, but the provider result stays marked as failed
            return replace(
                record,
                classification=Classification.BUSINESS,
                confidence=exclusion.confidence,
                keyword_exclusion=exclusion,
                reasoning=f"{record.reasoning}. {exclusion.reasoning}",
            )

        overridden = record.classification != Classification.BUSINESS
        if overridden:
            logger.debug(
                "Keyword exclusion overrides %s for payee %r",
                record.classification.value,
                record.payee_name,
            )
        reasoning = (
            f"{exclusion.reasoning} (provider said {record.classification.value})"
            if overridden
            else f"{record.reasoning} {exclusion.reasoning}".strip()
        )
        return replace(
            record,
            classification=Classification.BUSINESS,
            confidence=max(record.confidence, exclusion.confidence)
            if not overridden
            else exclusion.confidence,
            processing_tier=ProcessingTier.EXCLUDED,
            keyword_exclusion=exclusion,
            reasoning=reasoning,
        )
