"""Industry (SIC) code validation and preservation checks."""

from __future__ import annotations

import re
from typing import Optional

from payeebatch.domain.classification.exceptions import IndustryCodeLostError
from payeebatch.domain.classification.value_objects import (
    Classification,
    ClassificationRecord,
)

INDUSTRY_CODE_PATTERN = re.compile(r"^\d{2,4}$")


def validate_industry_code(record: ClassificationRecord) -> list[str]:
    """Return warnings for the industry-code fields of a record.

    Only Business classifications are expected to carry a code. Missing or
    malformed codes and missing descriptions are warnings, never errors.
    """
    if record.classification != Classification.BUSINESS or record.failed:
        return []

    warnings: list[str] = []
    if not record.sic_code:
        warnings.append("Business classification is missing an industry code")
    elif not INDUSTRY_CODE_PATTERN.match(record.sic_code):
        warnings.append(f"Industry code {record.sic_code!r} is not 2-4 digits")

    if record.sic_code and not record.sic_description:
        warnings.append("Industry code description is missing")
    return warnings


def ensure_code_preserved(
    before: Optional[str],
    after: Optional[str],
    *,
    stage: str,
    payee_name: str,
    row_index: Optional[int] = None,
) -> None:
    """Raise IndustryCodeLostError if a code present before a step is gone after it."""
    if before and before != after:
        raise IndustryCodeLostError(
            stage=stage,
            payee_name=payee_name,
            expected=before,
            actual=after,
            row_index=row_index,
        )
