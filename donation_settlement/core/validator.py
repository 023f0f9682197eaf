"""
Event validation: reconcile a confirmed PaymentIntent with the stored payment.

Pure functions, no side effects. A rejection raises
SettlementValidationError; these events will never become valid, so they must
not be retried blindly.
"""
from enum import Enum

from donation_settlement.core.snapshot import SettlementSnapshot
from donation_settlement.database import PaymentStatus
from donation_settlement.errors import SettlementValidationError, ValidationReason
from donation_settlement.integrations.stripe_events import PaymentIntent

CONFIRMABLE_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PAID.value)


class ValidationResult(Enum):
    PROCEED = "proceed"
    ALREADY_SETTLED = "already_settled"


def ensure_full_capture(intent: PaymentIntent) -> None:
    """Partial captures are not supported: the whole amount must have been received."""
    if intent.amount != intent.amount_received:
        raise SettlementValidationError(
            "amount does not match amount_received",
            ValidationReason.PARTIAL_CAPTURE,
        )


def validate_confirmation(
    intent: PaymentIntent, snapshot: SettlementSnapshot
) -> ValidationResult:
    """
    Check the event against the stored payment.

    Returns ALREADY_SETTLED when the payment is already paid, so a replayed
    event is acknowledged without touching any record.

    Raises:
        SettlementValidationError: amount drift, a different transaction bound
            to the payment, or a payment that cannot be confirmed
    """
    payment = snapshot.payment

    if intent.amount != payment.total_amount:
        raise SettlementValidationError(
            "payment intent amount does not match sum of donation_amount and "
            "contribution_amount on payment",
            ValidationReason.AMOUNT_MISMATCH,
        )

    if payment.reference is not None and intent.id != payment.reference:
        raise SettlementValidationError(
            "payment intent id does not match reference on payment",
            ValidationReason.REFERENCE_MISMATCH,
        )

    if payment.status not in CONFIRMABLE_STATUSES:
        raise SettlementValidationError(
            f"payment in invalid state {payment.status} to be confirmed",
            ValidationReason.INVALID_PAYMENT_STATE,
        )

    if payment.status == PaymentStatus.PAID.value:
        return ValidationResult.ALREADY_SETTLED

    return ValidationResult.PROCEED
