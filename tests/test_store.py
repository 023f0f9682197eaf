"""
Tests for the settlement store's conditional writes.
"""
from typing import Any, Callable

import pytest

from conftest import DONATION_ID, FUNDRAISER_ID, PAYMENT_ID
from donation_settlement.database import (
    ConditionalWrite,
    Donation,
    DonationPrecondition,
    Fundraiser,
    FundraiserPrecondition,
    Payment,
    PaymentPrecondition,
    PaymentStatus,
    SettlementStore,
)
from donation_settlement.errors import RecordNotFoundError, ValidationReason

PAYMENT_KEY = {"donation_id": DONATION_ID, "id": PAYMENT_ID}
DONATION_KEY = {"fundraiser_id": FUNDRAISER_ID, "id": DONATION_ID}
FUNDRAISER_KEY = {"id": FUNDRAISER_ID}


def pending_payment_precondition(**overrides: Any) -> PaymentPrecondition:
    values = {
        "reference": None,
        "donation_amount": 1000,
        "contribution_amount": 50,
        "match_funding_amount": None,
        "status": PaymentStatus.PENDING,
    }
    values.update(overrides)
    return PaymentPrecondition(**values)


class TestSettlementStore:
    """Test suite for SettlementStore."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_returns_record(self, store: SettlementStore, seed_records: Callable) -> None:
        await seed_records(fundraiser={"match_funding_rate": 25})

        fundraiser = await store.get(Fundraiser, id=FUNDRAISER_ID)

        assert fundraiser.match_funding_rate == 25

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_missing_record_raises(self, store: SettlementStore) -> None:
        with pytest.raises(RecordNotFoundError) as exc_info:
            await store.get(Payment, donation_id="nope", id="nope")

        assert exc_info.value.table == "payments"
        assert exc_info.value.reason is ValidationReason.RECORD_NOT_FOUND

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_with_null_precondition_matches(
        self, store: SettlementStore, seed_records: Callable, read_records: Callable
    ) -> None:
        """None in a precondition means the column must still be NULL."""
        await seed_records()

        result = await store.update(
            ConditionalWrite(
                label="payment",
                model=Payment,
                key=PAYMENT_KEY,
                precondition=pending_payment_precondition(),
                set_values={"status": PaymentStatus.PAID.value, "match_funding_amount": 0},
            )
        )

        assert result.applied
        state = await read_records()
        assert state.payment["status"] == "paid"
        assert state.payment["match_funding_amount"] == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stale_precondition_does_not_write(
        self, store: SettlementStore, seed_records: Callable, read_records: Callable
    ) -> None:
        await seed_records(payment={"reference": "pi_other"})

        result = await store.update(
            ConditionalWrite(
                label="payment",
                model=Payment,
                key=PAYMENT_KEY,
                precondition=pending_payment_precondition(),
                set_values={"status": PaymentStatus.PAID.value},
            )
        )

        assert not result.applied
        assert result.failed_write == "payment"
        assert (await read_records()).payment["status"] == "pending"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_missing_row_is_not_applied(self, store: SettlementStore) -> None:
        result = await store.update(
            ConditionalWrite(
                label="donation_billing",
                model=Donation,
                key={"fundraiser_id": "nope", "id": "nope"},
                set_values={"stripe_customer_id": "cus_1"},
            )
        )

        assert not result.applied
        assert result.failed_write == "donation_billing"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_all_applies_increments(
        self, store: SettlementStore, seed_records: Callable, read_records: Callable
    ) -> None:
        await seed_records(
            fundraiser={"total_raised": 100, "match_funding_remaining": 500},
            donation={"donation_amount": 10},
        )

        result = await store.apply_all(
            [
                ConditionalWrite(
                    label="donation",
                    model=Donation,
                    key=DONATION_KEY,
                    precondition=DonationPrecondition(match_funding_amount=0, donation_counted=False),
                    set_values={"donation_counted": True},
                    increments={"donation_amount": 1000},
                ),
                ConditionalWrite(
                    label="fundraiser",
                    model=Fundraiser,
                    key=FUNDRAISER_KEY,
                    precondition=FundraiserPrecondition(
                        match_funding_remaining=500, match_funding_per_donation_limit=None
                    ),
                    increments={"total_raised": 1200, "match_funding_remaining": -200},
                    keep_non_negative=("match_funding_remaining",),
                ),
            ]
        )

        assert result.applied
        state = await read_records()
        assert state.donation["donation_amount"] == 1010
        assert state.donation["donation_counted"] is True
        assert state.fundraiser["total_raised"] == 1300
        assert state.fundraiser["match_funding_remaining"] == 300

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_all_rolls_back_on_last_write(
        self, store: SettlementStore, seed_records: Callable, read_records: Callable
    ) -> None:
        """Earlier writes in the batch are undone when a later one fails."""
        await seed_records(fundraiser={"match_funding_remaining": 100})
        before = await read_records()

        result = await store.apply_all(
            [
                ConditionalWrite(
                    label="payment",
                    model=Payment,
                    key=PAYMENT_KEY,
                    precondition=pending_payment_precondition(),
                    set_values={"status": PaymentStatus.PAID.value},
                ),
                ConditionalWrite(
                    label="donation",
                    model=Donation,
                    key=DONATION_KEY,
                    precondition=DonationPrecondition(match_funding_amount=0, donation_counted=False),
                    increments={"donation_amount": 1000},
                ),
                ConditionalWrite(
                    label="fundraiser",
                    model=Fundraiser,
                    key=FUNDRAISER_KEY,
                    precondition=FundraiserPrecondition(
                        match_funding_remaining=999, match_funding_per_donation_limit=None
                    ),
                    increments={"total_raised": 1000},
                ),
            ]
        )

        assert result.failed_write == "fundraiser"
        assert await read_records() == before

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_non_negative_guard_blocks_overdraw(
        self, store: SettlementStore, seed_records: Callable, read_records: Callable
    ) -> None:
        await seed_records(fundraiser={"match_funding_remaining": 100})

        result = await store.update(
            ConditionalWrite(
                label="fundraiser",
                model=Fundraiser,
                key=FUNDRAISER_KEY,
                precondition=FundraiserPrecondition(
                    match_funding_remaining=100, match_funding_per_donation_limit=None
                ),
                increments={"match_funding_remaining": -150},
                keep_non_negative=("match_funding_remaining",),
            )
        )

        assert not result.applied
        assert (await read_records()).fundraiser["match_funding_remaining"] == 100
