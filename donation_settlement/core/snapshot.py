"""
Immutable snapshots of the records a settlement reads.

The three records are fetched concurrently and are not read in one
transaction; the conditional write at commit time is what detects that one of
them went stale.
"""
import asyncio
from typing import Optional

from pydantic import BaseModel, ConfigDict

from donation_settlement.database import (
    Donation,
    DonationPrecondition,
    Fundraiser,
    FundraiserPrecondition,
    Payment,
    PaymentPrecondition,
    PaymentStatus,
    SettlementStore,
)
from donation_settlement.integrations.stripe_events import PaymentIntentMetadata


class _Snapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


class PaymentSnapshot(_Snapshot):
    id: str
    donation_id: str
    status: str
    donation_amount: int
    contribution_amount: int
    match_funding_amount: Optional[int]
    reference: Optional[str]

    @property
    def total_amount(self) -> int:
        """Amount the donor was charged: donation plus platform contribution."""
        return self.donation_amount + self.contribution_amount

    def precondition(self) -> PaymentPrecondition:
        return PaymentPrecondition(
            reference=self.reference,
            donation_amount=self.donation_amount,
            contribution_amount=self.contribution_amount,
            match_funding_amount=self.match_funding_amount,
            status=PaymentStatus(self.status),
        )


class DonationSnapshot(_Snapshot):
    id: str
    fundraiser_id: str
    donor_name: str
    donor_email: str
    donation_amount: int
    contribution_amount: int
    match_funding_amount: int
    donation_counted: bool

    def precondition(self) -> DonationPrecondition:
        return DonationPrecondition(
            match_funding_amount=self.match_funding_amount,
            donation_counted=self.donation_counted,
        )


class FundraiserSnapshot(_Snapshot):
    id: str
    total_raised: int
    donations_count: int
    match_funding_rate: int
    match_funding_remaining: Optional[int]
    match_funding_per_donation_limit: Optional[int]

    def precondition(self) -> FundraiserPrecondition:
        return FundraiserPrecondition(
            match_funding_remaining=self.match_funding_remaining,
            match_funding_per_donation_limit=self.match_funding_per_donation_limit,
        )


class SettlementSnapshot(BaseModel):
    """Payment, donation and fundraiser as read at the start of one settlement."""

    model_config = ConfigDict(frozen=True)

    payment: PaymentSnapshot
    donation: DonationSnapshot
    fundraiser: FundraiserSnapshot


async def load_snapshot(
    store: SettlementStore, metadata: PaymentIntentMetadata
) -> SettlementSnapshot:
    """
    Fetch the three records named by the event metadata concurrently.

    Raises:
        RecordNotFoundError: If any of them does not exist
    """
    fundraiser, donation, payment = await asyncio.gather(
        store.get(Fundraiser, id=metadata.fundraiser_id),
        store.get(Donation, fundraiser_id=metadata.fundraiser_id, id=metadata.donation_id),
        store.get(Payment, donation_id=metadata.donation_id, id=metadata.payment_id),
    )
    return SettlementSnapshot(
        payment=PaymentSnapshot.model_validate(payment),
        donation=DonationSnapshot.model_validate(donation),
        fundraiser=FundraiserSnapshot.model_validate(fundraiser),
    )
