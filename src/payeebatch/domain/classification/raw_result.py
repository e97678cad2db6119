"""Typed boundary for raw provider classification payloads.

Provider output is loosely typed JSON. It is parsed exactly once, here, into
either ``ParsedOk`` or ``ParsedError``; nothing downstream looks at the raw
payload again.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from payeebatch.domain.classification.value_objects import (
    Classification,
    normalize_confidence,
)


@dataclass(frozen=True)
class ParsedOk:
    classification: Classification
    confidence: int
    reasoning: str
    sic_code: Optional[str] = None
    sic_description: Optional[str] = None


@dataclass(frozen=True)
class ParsedError:
    reason: str
    raw: Optional[str] = None


ParsedResult = Union[ParsedOk, ParsedError]


class _ClassificationPayload(BaseModel):
    """Shape the provider is instructed to answer with."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    classification: Classification
    confidence: int
    reasoning: str = ""
    sic_code: Optional[str] = Field(default=None, alias="sicCode")
    sic_description: Optional[str] = Field(default=None, alias="sicDescription")

    @field_validator("classification", mode="before")
    @classmethod
    def _parse_classification(cls, value: Any) -> Classification:
        if isinstance(value, Classification):
            return value
        if not isinstance(value, str):
            msg = "classification must be a string"
            raise ValueError(msg)  # NOQA: TRY004
        return Classification.parse(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _parse_confidence(cls, value: Any) -> int:
        return normalize_confidence(value)

    @field_validator("sic_code", "sic_description", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.strip("`")
        if stripped.lower().startswith("json"):
            stripped = stripped[4:]
    return stripped.strip()


def parse_raw_result(raw: Union[str, bytes, Mapping[str, Any], None]) -> ParsedResult:
    """Parse a provider payload into the tagged result type.

    Never raises: every structural problem becomes a ``ParsedError``.
    """
    if raw is None:
        return ParsedError(reason="No result returned by provider")

    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        if not text.strip():
            return ParsedError(reason="Empty result content", raw=text)
        try:
            data = json.loads(_strip_code_fence(text))
        except json.JSONDecodeError as e:
            return ParsedError(reason=f"Invalid JSON: {e.msg}", raw=text[:500])
        raw_text: Optional[str] = text[:500]
    else:
        data = dict(raw)
        raw_text = None

    if not isinstance(data, dict):
        return ParsedError(reason="Result is not a JSON object", raw=raw_text)

    if data.get("error") and "classification" not in data:
        return ParsedError(reason=f"Provider error: {data['error']}", raw=raw_text)

    missing = [key for key in ("classification", "confidence") if key not in data]
    if missing:
        return ParsedError(
            reason=f"Missing required field(s): {', '.join(missing)}",
            raw=raw_text,
        )

    try:
        payload = _ClassificationPayload.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        return ParsedError(reason=f"Invalid {field}: {first.get('msg')}", raw=raw_text)

    return ParsedOk(
        classification=payload.classification,
        confidence=payload.confidence,
        reasoning=payload.reasoning,
        sic_code=payload.sic_code,
        sic_description=payload.sic_description,
    )
