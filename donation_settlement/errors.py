"""
Settlement error taxonomy.

Every failure surfaced by the settlement path is one of four kinds so the
caller (and Stripe's redelivery) can tell a permanent rejection from a
transient one:

- unauthorized: the webhook signature is missing or invalid
- malformed: the event can never be applied (amounts, reference, state)
- conflict: a record changed between read and write; retry the whole event
- dependency: the billing provider failed before any financial write
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Classification used for HTTP mapping and metrics."""

    UNAUTHORIZED = "unauthorized"
    MALFORMED = "malformed"
    CONFLICT = "conflict"
    DEPENDENCY = "dependency"


class ValidationReason(str, Enum):
    """Why an event was rejected as malformed."""

    MALFORMED_EVENT = "malformed_event"
    PARTIAL_CAPTURE = "partial_capture"
    AMOUNT_MISMATCH = "amount_mismatch"
    REFERENCE_MISMATCH = "reference_mismatch"
    INVALID_PAYMENT_STATE = "invalid_payment_state"
    RECORD_NOT_FOUND = "record_not_found"


class SettlementError(Exception):
    """Base exception for settlement errors."""

    kind: ErrorKind

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": str(self)}


class WebhookAuthError(SettlementError):
    """Raised when a webhook signature is missing or fails verification."""

    kind = ErrorKind.UNAUTHORIZED


class SettlementValidationError(SettlementError):
    """Raised when an event can never be applied to the stored records."""

    kind = ErrorKind.MALFORMED

    def __init__(self, message: str, reason: ValidationReason):
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "reason": self.reason.value}


class RecordNotFoundError(SettlementValidationError):
    """Raised when event metadata points at a record that does not exist."""

    def __init__(self, table: str, key: Dict[str, Any]):
        super().__init__(
            f"{table} record not found for key {key}",
            ValidationReason.RECORD_NOT_FOUND,
        )
        self.table = table
        self.key = key


class SettlementConflictError(SettlementError):
    """
    Raised when an optimistic-concurrency precondition failed at commit time.

    Nothing was written. Re-fetching and re-running the whole pipeline is safe.
    """

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, failed_write: Optional[str] = None):
        super().__init__(message)
        self.failed_write = failed_write

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "failed_write": self.failed_write}


class BillingDependencyError(SettlementError):
    """Raised when the billing provider call fails before settlement."""

    kind = ErrorKind.DEPENDENCY

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error
