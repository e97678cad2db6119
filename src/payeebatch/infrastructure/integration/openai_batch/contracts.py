"""Wire models for the batch JSONL request and output files."""

from __future__ import annotations

import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

CHAT_COMPLETIONS_ENDPOINT = "/v1/chat/completions"

_CUSTOM_ID = re.compile(r"^payee-(\d+)-")

SYSTEM_PROMPT = """You are an expert at classifying payee names as either "Business" or "Individual".

For BUSINESS entities, also assign a 4-digit SIC (Standard Industrial Classification) code and description based on the business type.

Common SIC codes:
- 7372: Prepackaged Software
- 8742: Management Consulting Services
- 5411: Grocery Stores
- 8011: Offices of Doctors of Medicine
- 6021: National Commercial Banks
- 7011: Hotels and Motels
- 5812: Eating Places
- 1521: General Contractors-Single Family Houses
- 8999: Services, Not Elsewhere Classified

Return ONLY a JSON object with these exact fields:
- classification: "Business" or "Individual"
- confidence: number (0-100)
- reasoning: short explanation
- sicCode: 4-digit string for businesses, null for individuals
- sicDescription: description for businesses, null for individuals"""


def custom_id_for(index: int, timestamp_ms: int) -> str:
    return f"payee-{index}-{timestamp_ms}"


def index_from_custom_id(custom_id: str) -> Optional[int]:
    match = _CUSTOM_ID.match(custom_id)
    return int(match.group(1)) if match else None


class ChatMessage(BaseModel):
    role: Literal["system", "user"]
    content: str


class ChatCompletionBody(BaseModel):
    model: str
    messages: list[ChatMessage]
    temperature: float = 0.1
    max_tokens: int = 300
    response_format: dict[str, str] = Field(default_factory=lambda: {"type": "json_object"})


class BatchRequestLine(BaseModel):
    """One line of the uploaded JSONL input file."""

    custom_id: str
    method: Literal["POST"] = "POST"
    url: str = CHAT_COMPLETIONS_ENDPOINT
    body: ChatCompletionBody

    @classmethod
    def for_payee(cls, index: int, name: str, model: str, timestamp_ms: int) -> BatchRequestLine:
        return cls(
            custom_id=custom_id_for(index, timestamp_ms),
            body=ChatCompletionBody(
                model=model,
                messages=[
                    ChatMessage(role="system", content=SYSTEM_PROMPT),
                    ChatMessage(
                        role="user",
                        content=(
                            "Classify this payee name and assign a SIC code if it is a "
                            f'business: "{name}"'
                        ),
                    ),
                ],
            ),
        )


class BatchLineError(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: Optional[str] = None
    message: str = "Unknown error"


class BatchLineResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status_code: int
    body: dict[str, Any] = Field(default_factory=dict)


class BatchOutputLine(BaseModel):
    """One line of the provider's JSONL output or error file."""

    model_config = ConfigDict(extra="ignore")

    custom_id: str
    response: Optional[BatchLineResponse] = None
    error: Optional[BatchLineError] = None

    @property
    def payee_index(self) -> Optional[int]:
        return index_from_custom_id(self.custom_id)

    def raw_result(self) -> Any:
        """Content handed to the reconciler: message text or an error marker."""
        if self.error is not None:
            return {"error": self.error.message}
        if self.response is None:
            return {"error": "No response in batch result"}
        if self.response.status_code >= 400:
            return {"error": f"Request failed with status {self.response.status_code}"}
        choices = self.response.body.get("choices") or []
        if not choices:
            return {"error": "Response has no choices"}
        return (choices[0].get("message") or {}).get("content")
