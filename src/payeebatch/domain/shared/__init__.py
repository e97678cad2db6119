"""Shared domain primitives."""

from payeebatch.domain.shared.exceptions import (
    BusinessRuleViolation,
    ConflictError,
    ConsistencyError,
    DomainException,
    EntityNotFoundError,
    ErrorCode,
    ValidationError,
)
from payeebatch.domain.shared.time import ensure_tz_aware, from_epoch, to_epoch, utc_now

__all__ = [
    "BusinessRuleViolation",
    "ConflictError",
    "ConsistencyError",
    "DomainException",
    "EntityNotFoundError",
    "ErrorCode",
    "ValidationError",
    "ensure_tz_aware",
    "from_epoch",
    "to_epoch",
    "utc_now",
]
