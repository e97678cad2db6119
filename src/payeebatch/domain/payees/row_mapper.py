"""Deduplication of uploaded rows and re-expansion of unique results."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, Union

from payeebatch.domain.classification.exceptions import RowCountMismatchError
from payeebatch.domain.classification.value_objects import ClassificationRecord
from payeebatch.domain.payees.normalization import (
    clean_payee_name,
    normalize_payee_name,
)
from payeebatch.domain.payees.row_mapping import ExpandedRow, PayeeRowData, RowMapping
from payeebatch.domain.shared.exceptions import ErrorCode, ValidationError

logger = logging.getLogger(__name__)

LARGE_INPUT_ROWS = 10_000
DEFAULT_CHUNK_SIZE = 250
LARGE_INPUT_CHUNK_SIZE = 500

UniqueResults = Union[
    Sequence[Optional[ClassificationRecord]],
    Mapping[int, ClassificationRecord],
]
ProgressCallback = Callable[[int, int, float], Union[None, Awaitable[None]]]


def build_mapping(
    rows: Sequence[Mapping[str, Any]],
    payee_column: str,
    file_name: Optional[str] = None,
) -> PayeeRowData:
    """Deduplicate payee values and map every row onto the unique list.

    The unique list keeps the first-seen cleaned spelling for each
    normalized key. Empty payee cells get a ``Unknown_Row_<n>`` name so
    that they are classified (and counted) individually.

    Raises
    ------
    ValidationError
        If rows exist but none of them has ``payee_column``.
    """
    if rows and not any(payee_column in row for row in rows):
        raise ValidationError(
            f"Payee column {payee_column!r} not found in uploaded rows",
            code=ErrorCode.MISSING_PAYEE_COLUMN,
            details={"payee_column": payee_column},
        )

    unique_names: list[str] = []
    index_by_key: dict[str, int] = {}
    mappings: list[RowMapping] = []
    headers: dict[str, None] = {}

    for row_index, row in enumerate(rows):
        for header in row:
            headers.setdefault(str(header), None)

        raw_value = row.get(payee_column)
        display = clean_payee_name(None if raw_value is None else str(raw_value))
        if display:
            key = normalize_payee_name(display).value
        else:
            display = f"Unknown_Row_{row_index + 1}"
            key = display.upper()

        unique_index = index_by_key.get(key)
        if unique_index is None:
            unique_index = len(unique_names)
            index_by_key[key] = unique_index
            unique_names.append(display)

        mappings.append(
            RowMapping(
                original_row_index=row_index,
                payee_name=display,
                normalized_payee_name=key,
                unique_payee_index=unique_index,
            ),
        )

    logger.debug(
        "Mapped %d rows onto %d unique payees",
        len(mappings),
        len(unique_names),
    )
    return PayeeRowData(
        unique_payee_names=tuple(unique_names),
        row_mappings=tuple(mappings),
        original_file_data=tuple(dict(row) for row in rows),
        payee_column=payee_column,
        file_name=file_name,
        file_headers=tuple(headers),
    )


def _lookup(results: UniqueResults, index: int) -> Optional[ClassificationRecord]:
    if isinstance(results, Mapping):
        return results.get(index)
    if 0 <= index < len(results):
        return results[index]
    return None


def _expand_row(
    results: UniqueResults,
    payee_row_data: PayeeRowData,
    row_index: int,
) -> ExpandedRow:
    mapping = payee_row_data.row_mappings[row_index]
    record = _lookup(results, mapping.unique_payee_index)
    return ExpandedRow(
        row_index=row_index,
        mapping=mapping,
        original_data=dict(payee_row_data.original_file_data[row_index]),
        record=record or ClassificationRecord.placeholder(mapping.payee_name),
        is_placeholder=record is None,
    )


def _check_row_count(payee_row_data: PayeeRowData, expanded: list[ExpandedRow]) -> None:
    if len(expanded) != payee_row_data.row_count:
        raise RowCountMismatchError(payee_row_data.row_count, len(expanded))


def expand(
    unique_results: UniqueResults,
    payee_row_data: PayeeRowData,
) -> list[ExpandedRow]:
    """Copy each unique result onto every original row that maps to it.

    Rows whose unique payee has no result receive a placeholder record, so
    the output always has one row per original row, in original order.
    """
    expanded = [
        _expand_row(unique_results, payee_row_data, i)
        for i in range(payee_row_data.row_count)
    ]
    _check_row_count(payee_row_data, expanded)
    return expanded


def chunk_size_for(row_count: int) -> int:
    return LARGE_INPUT_CHUNK_SIZE if row_count > LARGE_INPUT_ROWS else DEFAULT_CHUNK_SIZE


async def expand_chunked(
    unique_results: UniqueResults,
    payee_row_data: PayeeRowData,
    chunk_size: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> list[ExpandedRow]:
    """Chunked ``expand`` that yields to the event loop between chunks.

    ``on_progress`` receives ``(processed, total, percentage)`` after every
    chunk and may be sync or async.
    """
    total = payee_row_data.row_count
    size = chunk_size or chunk_size_for(total)
    if size < 1:
        msg = f"chunk_size must be positive, got {size}"
        raise ValueError(msg)

    expanded: list[ExpandedRow] = []
    for start in range(0, total, size):
        end = min(start + size, total)
        expanded.extend(
            _expand_row(unique_results, payee_row_data, i) for i in range(start, end)
        )
        if on_progress is not None:
            maybe = on_progress(end, total, round(end / total * 100, 1))
            if inspect.isawaitable(maybe):
                await maybe
        await asyncio.sleep(0)

    _check_row_count(payee_row_data, expanded)
    placeholders = sum(1 for row in expanded if row.is_placeholder)
    if placeholders:
        logger.warning(
            "%d of %d rows had no classification result and received placeholders",
            placeholders,
            total,
        )
    return expanded
