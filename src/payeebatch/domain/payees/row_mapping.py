"""Row mapping aggregate linking uploaded rows to unique payees."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from payeebatch.domain.classification.value_objects import ClassificationRecord

OUTPUT_COLUMNS = (
    "ai_classification",
    "ai_confidence",
    "ai_reasoning",
    "ai_processing_tier",
    "ai_processing_method",
    "keyword_exclusion_applied",
    "matched_keywords",
    "keyword_confidence",
    "keyword_reasoning",
    "sic_code",
    "sic_description",
    "normalized_payee_name",
    "original_payee_name",
    "processing_quality_score",
    "requires_review",
)


@dataclass(frozen=True)
class RowMapping:
    """Position of one original row in the unique payee set."""

    original_row_index: int
    payee_name: str
    normalized_payee_name: str
    unique_payee_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalRowIndex": self.original_row_index,
            "payeeName": self.payee_name,
            "normalizedPayeeName": self.normalized_payee_name,
            "uniquePayeeIndex": self.unique_payee_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RowMapping:
        return cls(
            original_row_index=int(data["originalRowIndex"]),
            payee_name=data["payeeName"],
            normalized_payee_name=data["normalizedPayeeName"],
            unique_payee_index=int(data["uniquePayeeIndex"]),
        )


@dataclass(frozen=True)
class PayeeRowData:
    """Everything needed to go from an upload to per-row output and back.

    Invariants: ``row_mappings[i].original_row_index == i`` and every
    ``unique_payee_index`` points into ``unique_payee_names``.
    """

    unique_payee_names: tuple[str, ...]
    row_mappings: tuple[RowMapping, ...]
    original_file_data: tuple[dict[str, Any], ...]
    payee_column: Optional[str] = None
    file_name: Optional[str] = None
    file_headers: tuple[str, ...] = ()

    def __post_init__(self):
        if len(self.row_mappings) != len(self.original_file_data):
            msg = (
                f"{len(self.row_mappings)} row mappings for "
                f"{len(self.original_file_data)} original rows"
            )
            raise ValueError(msg)
        unique_count = len(self.unique_payee_names)
        for position, mapping in enumerate(self.row_mappings):
            if mapping.original_row_index != position:
                msg = f"Row mapping at {position} has index {mapping.original_row_index}"
                raise ValueError(msg)
            if not 0 <= mapping.unique_payee_index < unique_count:
                msg = (
                    f"Row {position} points at unique index "
                    f"{mapping.unique_payee_index} of {unique_count}"
                )
                raise ValueError(msg)

    @property
    def row_count(self) -> int:
        return len(self.row_mappings)

    def to_dict(self, include_file_data: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "uniquePayeeNames": list(self.unique_payee_names),
            "rowMappings": [m.to_dict() for m in self.row_mappings],
            "payeeColumn": self.payee_column,
            "fileName": self.file_name,
            "fileHeaders": list(self.file_headers),
        }
        if include_file_data:
            data["originalFileData"] = [dict(row) for row in self.original_file_data]
        return data

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        original_file_data: Optional[list[dict[str, Any]]] = None,
    ) -> PayeeRowData:
        rows = (
            original_file_data
            if original_file_data is not None
            else data.get("originalFileData") or []
        )
        return cls(
            unique_payee_names=tuple(data.get("uniquePayeeNames") or ()),
            row_mappings=tuple(RowMapping.from_dict(m) for m in data.get("rowMappings") or ()),
            original_file_data=tuple(dict(r) for r in rows),
            payee_column=data.get("payeeColumn"),
            file_name=data.get("fileName"),
            file_headers=tuple(data.get("fileHeaders") or ()),
        )


def _cell(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return value


@dataclass(frozen=True)
class ExpandedRow:
    """One original row with the classification of its unique payee."""

    row_index: int
    mapping: RowMapping
    original_data: dict[str, Any]
    record: ClassificationRecord
    is_placeholder: bool = False

    def output_columns(self) -> dict[str, Any]:
        record = self.record
        exclusion = record.keyword_exclusion
        return {
            "ai_classification": record.classification.value,
            "ai_confidence": record.confidence,
            "ai_reasoning": record.reasoning,
            "ai_processing_tier": record.processing_tier.value,
            "ai_processing_method": record.processing_method,
            "keyword_exclusion_applied": "Yes" if exclusion.is_excluded else "No",
            "matched_keywords": "; ".join(exclusion.matched_keywords),
            "keyword_confidence": exclusion.confidence,
            "keyword_reasoning": exclusion.reasoning,
            "sic_code": record.sic_code or "",
            "sic_description": record.sic_description or "",
            "normalized_payee_name": self.mapping.normalized_payee_name,
            "original_payee_name": self.mapping.payee_name,
            "processing_quality_score": record.quality_score,
            "requires_review": "Yes" if record.requires_review else "No",
        }

    def flat(self) -> dict[str, Any]:
        """Original columns followed by the classification columns."""
        merged = {key: _cell(value) for key, value in self.original_data.items()}
        merged.update(self.output_columns())
        return merged

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowIndex": self.row_index,
            "mapping": self.mapping.to_dict(),
            "originalData": dict(self.original_data),
            "record": self.record.to_dict(),
            "isPlaceholder": self.is_placeholder,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExpandedRow:
        return cls(
            row_index=int(data["rowIndex"]),
            mapping=RowMapping.from_dict(data["mapping"]),
            original_data=dict(data.get("originalData") or {}),
            record=ClassificationRecord.from_dict(data["record"]),
            is_placeholder=bool(data.get("isPlaceholder", False)),
        )
