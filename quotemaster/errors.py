"""
quotemaster/errors.py

Typed exception hierarchy for QuoteMaster.

Every error carries:
- code: machine-readable identifier (stable, API-safe)
- http_status: status used by the JSON blueprints
- details: structured context (row numbers, field names, codes)

Hierarchy:

    QuoteMasterError
    +-- ValidationError               malformed input, rejected before any DB write
    +-- NotFoundError                 entity id does not exist
    +-- UnknownReferenceError         unknown supplier/product code, team without region
    +-- InvalidTransitionError        quotation status change not allowed
    +-- ImmutablePriceError           price field locked by quotation status
    +-- ImmutableRecordError          append-only record touched (PriceHistory)
    +-- ConflictError                 duplicate quotation / duplicate code
    +-- ConcurrentModificationError   optimistic version check failed
    +-- PermissionDeniedError         caller lacks the manage capability

All of these are recoverable by the caller (retry with corrected input).
"""

from __future__ import annotations

from typing import Any


class QuoteMasterError(Exception):
    """Base class for all domain errors."""

    code = "error"
    http_status = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(QuoteMasterError):
    """Malformed input. `row` and `field` locate the problem in the source data."""

    code = "validation_error"

    def __init__(self, message: str, *, field: str | None = None, row: int | None = None, **details: Any) -> None:
        if field is not None:
            details["field"] = field
        if row is not None:
            details["row"] = row
        super().__init__(message, **details)
        self.field = field
        self.row = row


class NotFoundError(QuoteMasterError):
    code = "not_found"
    http_status = 404


class UnknownReferenceError(QuoteMasterError):
    code = "reference_error"
    http_status = 422


class InvalidTransitionError(QuoteMasterError):
    code = "invalid_transition"
    http_status = 409

    def __init__(self, current: str, target: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Cannot change quotation status from '{current}' to '{target}'",
            current=current,
            target=target,
        )
        self.current = current
        self.target = target


class ImmutablePriceError(QuoteMasterError):
    code = "immutable_price"
    http_status = 409


class ImmutableRecordError(QuoteMasterError):
    code = "immutable_record"
    http_status = 409


class ConflictError(QuoteMasterError):
    code = "conflict"
    http_status = 409


class ConcurrentModificationError(QuoteMasterError):
    code = "concurrent_modification"
    http_status = 409


class PermissionDeniedError(QuoteMasterError):
    code = "forbidden"
    http_status = 403
