"""Exceptions raised by the classification pipeline."""

from typing import Optional

from payeebatch.domain.shared.exceptions import ConsistencyError, ErrorCode


class IndustryCodeLostError(ConsistencyError):
    """A previously present industry code disappeared during a transform."""

    def __init__(
        self,
        stage: str,
        payee_name: str,
        expected: str,
        actual: Optional[str],
        row_index: Optional[int] = None,
    ):
        where = f"row {row_index}" if row_index is not None else repr(payee_name)
        super().__init__(
            f"Industry code {expected!r} lost for {where} during {stage}",
            code=ErrorCode.INDUSTRY_CODE_LOST,
            details={
                "stage": stage,
                "payee_name": payee_name,
                "expected": expected,
                "actual": actual,
                "row_index": row_index,
            },
        )
        self.stage = stage
        self.expected = expected
        self.actual = actual


class RowCountMismatchError(ConsistencyError):
    """Expansion produced a different number of rows than were uploaded."""

    def __init__(self, expected: int, actual: int, stage: str = "expansion"):
        super().__init__(
            f"Row count mismatch after {stage}: expected {expected}, got {actual}",
            code=ErrorCode.ROW_COUNT_MISMATCH,
            details={"expected": expected, "actual": actual, "stage": stage},
        )
        self.expected = expected
        self.actual = actual
