"""
Atomic settlement writer.

Marks the payment paid and credits the donation and fundraiser totals as one
all-or-nothing unit. Each of the three writes carries the values read in the
snapshot as its precondition; if any record changed in between, nothing is
written and the caller gets a SettlementConflictError.
"""
from typing import List, Tuple

import structlog

from donation_settlement.core.snapshot import SettlementSnapshot
from donation_settlement.database import (
    ConditionalWrite,
    Donation,
    Fundraiser,
    Payment,
    PaymentStatus,
    SettlementStore,
)
from donation_settlement.errors import SettlementConflictError

logger = structlog.get_logger(__name__)


def build_settlement_writes(
    snapshot: SettlementSnapshot, match_funding_amount: int
) -> List[ConditionalWrite]:
    """Build the payment, donation and fundraiser writes for one settlement."""
    payment = snapshot.payment
    donation = snapshot.donation
    fundraiser = snapshot.fundraiser

    payment_write = ConditionalWrite(
        label="payment",
        model=Payment,
        key={"donation_id": payment.donation_id, "id": payment.id},
        precondition=payment.precondition(),
        set_values={
            "status": PaymentStatus.PAID.value,
            "match_funding_amount": match_funding_amount,
        },
    )

    donation_write = ConditionalWrite(
        label="donation",
        model=Donation,
        key={"fundraiser_id": donation.fundraiser_id, "id": donation.id},
        precondition=donation.precondition(),
        set_values={"donation_counted": True},
        increments={
            "donation_amount": payment.donation_amount,
            "contribution_amount": payment.contribution_amount,
            "match_funding_amount": match_funding_amount,
        },
    )

    # Counted from the snapshot; the donation precondition on donation_counted
    # stops two payments of one donation from both adding 1.
    fundraiser_increments = {
        "total_raised": payment.donation_amount + match_funding_amount,
        "donations_count": 0 if donation.donation_counted else 1,
    }
    keep_non_negative: Tuple[str, ...] = ()
    if fundraiser.match_funding_remaining is not None:
        fundraiser_increments["match_funding_remaining"] = -match_funding_amount
        keep_non_negative = ("match_funding_remaining",)

    fundraiser_write = ConditionalWrite(
        label="fundraiser",
        model=Fundraiser,
        key={"id": fundraiser.id},
        precondition=fundraiser.precondition(),
        increments=fundraiser_increments,
        keep_non_negative=keep_non_negative,
    )

    return [payment_write, donation_write, fundraiser_write]


class AtomicSettlementWriter:
    """Applies the three settlement writes through the store's atomic multi-write."""

    def __init__(self, store: SettlementStore):
        self.store = store

    async def commit(self, snapshot: SettlementSnapshot, match_funding_amount: int) -> None:
        """
        Apply the settlement.

        Raises:
            SettlementConflictError: If any record changed since the snapshot
        """
        writes = build_settlement_writes(snapshot, match_funding_amount)
        result = await self.store.apply_all(writes)

        if not result.applied:
            logger.warning(
                "settlement_commit_conflict",
                payment_id=snapshot.payment.id,
                failed_write=result.failed_write,
            )
            raise SettlementConflictError(
                f"{result.failed_write} record changed since it was read; "
                "re-fetch and retry the event",
                failed_write=result.failed_write,
            )

        logger.info(
            "settlement_committed",
            payment_id=snapshot.payment.id,
            match_funding_amount=match_funding_amount,
        )
