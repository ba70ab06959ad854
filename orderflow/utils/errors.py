"""Domain error taxonomy and standardized error payloads.

Every business-rule violation raised by the engine is an ``OrderflowError``.
Each carries a stable ``code`` and a ``details`` mapping with the structured
context a client needs (current status, attempts remaining, ...). The HTTP
layer turns them into ``error_response`` payloads; nothing here is
presentation text.
"""
from __future__ import annotations

from typing import Any


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class OrderflowError(Exception):
    """Base class for business-rule violations surfaced to the caller."""

    code = "ORDERFLOW_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None, code: str | None = None):
        self.message = message or self.__class__.__name__
        self.details: dict[str, Any] = dict(details or {})
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return error_response(self.code, self.message, self.details)


class ValidationError(OrderflowError):
    code = "VALIDATION_ERROR"
    status_code = 422


class NotFound(OrderflowError):
    code = "NOT_FOUND"
    status_code = 404


class Forbidden(OrderflowError):
    code = "FORBIDDEN"
    status_code = 403


class InvalidTransition(OrderflowError):
    """Requested status change is not in the legal transition table."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, current: Any, requested: Any, *, entity: str = "order", details: dict[str, Any] | None = None):
        current_value = getattr(current, "value", current)
        requested_value = getattr(requested, "value", requested)
        merged = {"entity": entity, "current_status": current_value, "requested_status": requested_value}
        merged.update(details or {})
        super().__init__(f"Cannot move {entity} from {current_value} to {requested_value}.", details=merged)
        self.current = current
        self.requested = requested


class EscrowStateConflict(OrderflowError):
    code = "ESCROW_STATE_CONFLICT"
    status_code = 409


class PinMismatch(OrderflowError):
    code = "PIN_MISMATCH"
    status_code = 400
    retryable = True

    def __init__(self, attempts_remaining: int):
        super().__init__("Delivery PIN does not match.", details={"attempts_remaining": attempts_remaining})
        self.attempts_remaining = attempts_remaining


class PinAttemptsExhausted(OrderflowError):
    code = "PIN_ATTEMPTS_EXHAUSTED"
    status_code = 423

    def __init__(self, max_attempts: int):
        super().__init__(
            "Delivery PIN locked; administrative unlock required.",
            details={"max_attempts": max_attempts, "attempts_remaining": 0},
        )


class DisputeBlocksSettlement(OrderflowError):
    code = "DISPUTE_BLOCKS_SETTLEMENT"
    status_code = 409

    def __init__(self, dispute_id: int, dispute_status: Any, operation: str):
        super().__init__(
            "An open dispute freezes escrow settlement.",
            details={
                "dispute_id": dispute_id,
                "dispute_status": getattr(dispute_status, "value", dispute_status),
                "operation": operation,
            },
        )


class SiteVisitIncomplete(OrderflowError):
    code = "SITE_VISIT_INCOMPLETE"
    status_code = 409
    retryable = True


__all__ = [
    "error_response",
    "OrderflowError",
    "ValidationError",
    "NotFound",
    "Forbidden",
    "InvalidTransition",
    "EscrowStateConflict",
    "PinMismatch",
    "PinAttemptsExhausted",
    "DisputeBlocksSettlement",
    "SiteVisitIncomplete",
]
