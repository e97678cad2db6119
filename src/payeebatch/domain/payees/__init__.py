"""Payee domain: name normalization and row mapping."""

from payeebatch.domain.payees.normalization import (
    UNKNOWN_PAYEE,
    NormalizedName,
    clean_payee_name,
    detect_payee_column,
    normalize_payee_name,
)
from payeebatch.domain.payees.row_mapper import (
    build_mapping,
    chunk_size_for,
    expand,
    expand_chunked,
)
from payeebatch.domain.payees.row_mapping import (
    OUTPUT_COLUMNS,
    ExpandedRow,
    PayeeRowData,
    RowMapping,
)

__all__ = [
    "OUTPUT_COLUMNS",
    "UNKNOWN_PAYEE",
    "ExpandedRow",
    "NormalizedName",
    "PayeeRowData",
    "RowMapping",
    "build_mapping",
    "chunk_size_for",
    "clean_payee_name",
    "detect_payee_column",
    "expand",
    "expand_chunked",
    "normalize_payee_name",
]
