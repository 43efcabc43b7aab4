"""Error taxonomy shared by every credit workflow.

Each error carries a stable ``kind`` that is returned to HTTP callers unchanged, so
clients can branch on it without parsing the human-readable message.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional


class CreditEngineError(Exception):
    """Base class for domain errors surfaced to callers."""

    kind: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.kind, "detail": self.message}
        for key, value in self.extra.items():
            payload[key] = str(value) if isinstance(value, Decimal) else value
        return payload


class ValidationError(CreditEngineError):
    """Missing or out-of-range input; never retried."""

    kind = "validation_error"
    status_code = 400


class ConflictError(CreditEngineError):
    """Raised when a PENDING mint already exists for the device."""

    kind = "conflict"
    status_code = 409

    def __init__(self, message: str, *, existing_id: Optional[str] = None, **extra: Any) -> None:
        super().__init__(message, existing_id=existing_id, **extra)
        self.existing_id = existing_id


class InvalidTransitionError(ConflictError):
    """Raised when a terminal transaction is asked to change state."""

    kind = "invalid_transition"

    def __init__(self, transaction_id: str, current_status: str, target_status: str) -> None:
        super().__init__(
            f"transaction {transaction_id} is {current_status}, cannot move to {target_status}",
            existing_id=transaction_id,
            current_status=current_status,
        )
        self.current_status = current_status
        self.target_status = target_status


class InsufficientCredits(CreditEngineError):
    kind = "insufficient_credits"
    status_code = 400

    def __init__(self, message: str, *, available: Decimal, requested: Decimal) -> None:
        super().__init__(message, available=available, requested=requested)
        self.available = available
        self.requested = requested


class NotFoundError(CreditEngineError):
    kind = "not_found"
    status_code = 404


class UpstreamUnavailable(CreditEngineError):
    """A time-series, relational or cache call failed or timed out. Retryable."""

    kind = "upstream_unavailable"
    status_code = 503


class PersistenceError(CreditEngineError):
    """A write failed after validation passed, e.g. a constraint violation."""

    kind = "persistence_error"
    status_code = 500


__all__ = [
    "CreditEngineError",
    "ValidationError",
    "ConflictError",
    "InvalidTransitionError",
    "InsufficientCredits",
    "NotFoundError",
    "UpstreamUnavailable",
    "PersistenceError",
]
