"""
Unit tests for event validation.
"""
from typing import Any, Dict, Optional

import pytest

from donation_settlement.core.snapshot import (
    DonationSnapshot,
    FundraiserSnapshot,
    PaymentSnapshot,
    SettlementSnapshot,
)
from donation_settlement.core.validator import (
    ValidationResult,
    ensure_full_capture,
    validate_confirmation,
)
from donation_settlement.errors import ErrorKind, SettlementValidationError, ValidationReason
from donation_settlement.integrations.stripe_events import PaymentIntent


def build_intent(**overrides: Any) -> PaymentIntent:
    data: Dict[str, Any] = {
        "id": "tx_1",
        "amount": 1050,
        "amount_received": 1050,
        "metadata": {"fundraiserId": "f1", "donationId": "d1", "paymentId": "p1"},
    }
    data.update(overrides)
    return PaymentIntent.model_validate(data)


def build_snapshot(
    status: str = "pending",
    reference: Optional[str] = None,
    donation_amount: int = 1000,
    contribution_amount: int = 50,
) -> SettlementSnapshot:
    return SettlementSnapshot(
        payment=PaymentSnapshot(
            id="p1",
            donation_id="d1",
            status=status,
            donation_amount=donation_amount,
            contribution_amount=contribution_amount,
            match_funding_amount=None,
            reference=reference,
        ),
        donation=DonationSnapshot(
            id="d1",
            fundraiser_id="f1",
            donor_name="Ada Lovelace",
            donor_email="ada@example.com",
            donation_amount=0,
            contribution_amount=0,
            match_funding_amount=0,
            donation_counted=False,
        ),
        fundraiser=FundraiserSnapshot(
            id="f1",
            total_raised=0,
            donations_count=0,
            match_funding_rate=0,
            match_funding_remaining=None,
            match_funding_per_donation_limit=None,
        ),
    )


class TestEnsureFullCapture:
    """Partial captures are rejected before anything is read."""

    @pytest.mark.unit
    def test_full_capture_passes(self) -> None:
        ensure_full_capture(build_intent())

    @pytest.mark.unit
    def test_partial_capture_rejected(self) -> None:
        with pytest.raises(SettlementValidationError) as exc_info:
            ensure_full_capture(build_intent(amount_received=1000))

        assert exc_info.value.reason is ValidationReason.PARTIAL_CAPTURE
        assert exc_info.value.kind is ErrorKind.MALFORMED


class TestValidateConfirmation:
    """Test suite for validate_confirmation."""

    @pytest.mark.unit
    def test_pending_payment_proceeds(self) -> None:
        assert validate_confirmation(build_intent(), build_snapshot()) is ValidationResult.PROCEED

    @pytest.mark.unit
    def test_amount_must_include_contribution(self) -> None:
        """The charge covers donation plus contribution, not the donation alone."""
        with pytest.raises(SettlementValidationError) as exc_info:
            validate_confirmation(build_intent(amount=1000, amount_received=1000), build_snapshot())

        assert exc_info.value.reason is ValidationReason.AMOUNT_MISMATCH

    @pytest.mark.unit
    def test_reference_mismatch_rejected(self) -> None:
        with pytest.raises(SettlementValidationError) as exc_info:
            validate_confirmation(build_intent(id="tx_2"), build_snapshot(reference="tx_1"))

        assert exc_info.value.reason is ValidationReason.REFERENCE_MISMATCH

    @pytest.mark.unit
    def test_matching_reference_proceeds(self) -> None:
        result = validate_confirmation(build_intent(id="tx_1"), build_snapshot(reference="tx_1"))
        assert result is ValidationResult.PROCEED

    @pytest.mark.unit
    def test_null_reference_accepts_any_intent(self) -> None:
        result = validate_confirmation(build_intent(id="tx_99"), build_snapshot(reference=None))
        assert result is ValidationResult.PROCEED

    @pytest.mark.unit
    def test_empty_reference_is_still_compared(self) -> None:
        with pytest.raises(SettlementValidationError) as exc_info:
            validate_confirmation(build_intent(id="tx_1"), build_snapshot(reference=""))

        assert exc_info.value.reason is ValidationReason.REFERENCE_MISMATCH

    @pytest.mark.unit
    @pytest.mark.parametrize("status", ["cancelled", "failed", "refunded"])
    def test_non_confirmable_status_rejected(self, status: str) -> None:
        with pytest.raises(SettlementValidationError) as exc_info:
            validate_confirmation(build_intent(), build_snapshot(status=status))

        assert exc_info.value.reason is ValidationReason.INVALID_PAYMENT_STATE
        assert status in str(exc_info.value)

    @pytest.mark.unit
    def test_paid_payment_is_already_settled(self) -> None:
        result = validate_confirmation(build_intent(), build_snapshot(status="paid"))
        assert result is ValidationResult.ALREADY_SETTLED

    @pytest.mark.unit
    def test_amount_checked_before_status(self) -> None:
        """A paid payment with drifted amounts is still a mismatch, not a no-op."""
        with pytest.raises(SettlementValidationError) as exc_info:
            validate_confirmation(build_intent(), build_snapshot(status="paid", donation_amount=900))

        assert exc_info.value.reason is ValidationReason.AMOUNT_MISMATCH

    @pytest.mark.unit
    def test_error_serializes_reason(self) -> None:
        with pytest.raises(SettlementValidationError) as exc_info:
            validate_confirmation(build_intent(amount=1, amount_received=1), build_snapshot())

        body = exc_info.value.to_dict()
        assert body["kind"] == "malformed"
        assert body["reason"] == "amount_mismatch"
