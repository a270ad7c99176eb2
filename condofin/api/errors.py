"""API error handling and response helpers."""

from typing import Any, Dict

from fastapi import HTTPException, status

from condofin.services.errors import (
    AmbiguousLumpSumError,
    CondoError,
    InvariantViolationError,
    NotFoundError,
)


class AppError(Exception):
    """Base application error."""

    def __init__(self, message: str, code: str, http_status: int = 400, details: Any = None):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        self.details = details
        super().__init__(message)


class EntityNotFoundError(AppError):
    """Referenced unit, creditor, owner or transaction does not exist."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, "not_found", status.HTTP_404_NOT_FOUND)


class InvariantConflictError(AppError):
    """Request would break a ledger invariant."""

    def __init__(self, message: str, violations: list | None = None):
        super().__init__(message, "invariant_violation", status.HTTP_409_CONFLICT, violations)


class NeedsReviewError(AppError):
    """Lump sum cannot be split automatically."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, "needs_manual_review", status.HTTP_422_UNPROCESSABLE_ENTITY, details)


class InvalidRequestError(AppError):
    """Malformed argument (bad month string, missing entity selector)."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_request", status.HTTP_422_UNPROCESSABLE_ENTITY)


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error response."""
    body: Dict[str, Any] = {
        "code": error.code,
        "message": error.message,
    }
    if error.details is not None:
        body["details"] = error.details
    return {"error": body}


def raise_app_error(error: AppError) -> None:
    """Raise an HTTPException from an AppError."""
    raise HTTPException(
        status_code=error.http_status,
        detail=error_response(error),
    )


def to_app_error(error: Exception) -> AppError:
    """Map an engine exception to its API error."""
    if isinstance(error, NotFoundError):
        return EntityNotFoundError(str(error))
    if isinstance(error, InvariantViolationError):
        violations = [
            {
                "kind": v.kind.value,
                "entity_type": v.entity_type,
                "entity_id": v.entity_id,
                "message": v.message,
            }
            for v in error.violations
        ]
        return InvariantConflictError(str(error), violations or None)
    if isinstance(error, AmbiguousLumpSumError):
        return NeedsReviewError(
            str(error),
            {
                "transaction_id": error.transaction_id,
                "amount": str(error.amount),
                "monthly_fee": str(error.monthly_fee),
                "ratio": str(error.ratio) if error.ratio is not None else None,
                "reason": error.reason,
            },
        )
    if isinstance(error, (ValueError, CondoError)):
        return InvalidRequestError(str(error))
    raise TypeError(f"No API mapping for {type(error).__name__}")
