"""Shared domain exceptions and error codes.

This module defines the base exception hierarchy and error codes for the
whole domain layer. All domain exceptions inherit from DomainException so
the presentation layer can translate them in one place.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes for API clients.

    These codes are part of the public API contract. Should not be changed.
    """

    # Validation Errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FORMAT = "INVALID_FORMAT"
    MISSING_PAYEE_COLUMN = "MISSING_PAYEE_COLUMN"
    EMPTY_PAYEE_SET = "EMPTY_PAYEE_SET"

    # Not Found Errors (404)
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    PAYEE_DATA_NOT_FOUND = "PAYEE_DATA_NOT_FOUND"
    ARTIFACT_NOT_FOUND = "ARTIFACT_NOT_FOUND"

    # Conflict Errors (409)
    CONFLICT = "CONFLICT"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Business Rule Violations (422)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    JOB_NOT_COMPLETED = "JOB_NOT_COMPLETED"
    JOB_ALREADY_TERMINAL = "JOB_ALREADY_TERMINAL"

    # Consistency Errors (500)
    CONSISTENCY_ERROR = "CONSISTENCY_ERROR"
    INDUSTRY_CODE_LOST = "INDUSTRY_CODE_LOST"
    ROW_COUNT_MISMATCH = "ROW_COUNT_MISMATCH"

    # Provider Errors (401/404/503)
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    PROVIDER_AUTH_FAILED = "PROVIDER_AUTH_FAILED"
    PROVIDER_JOB_NOT_FOUND = "PROVIDER_JOB_NOT_FOUND"
    PROVIDER_ERROR = "PROVIDER_ERROR"

    # Storage Errors (503)
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"

    # General Errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DomainException(Exception):  # NOQA: N818
    """Base exception for all domain-related errors.

    Attributes
    ----------
    message
        Human-readable error message (safe for end users)
    code
        Stable error code for programmatic handling
    details
        Optional additional context (logged but not exposed to users)
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code.value!r}, "
            f"details={self.details!r})"
        )


class ValidationError(DomainException):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class BusinessRuleViolation(DomainException):
    """Raised when a business rule or domain invariant is violated."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class EntityNotFoundError(DomainException):
    """Raised when a requested entity cannot be found."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.ENTITY_NOT_FOUND,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class ConflictError(DomainException):
    """Raised when an operation conflicts with the current state."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFLICT,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class ConsistencyError(DomainException):
    """Raised when a pipeline step would persist corrupted output.

    Consistency errors abort the completion of the affected job. They are
    never downgraded to warnings.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONSISTENCY_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)
