"""
Typed preconditions and conditional writes for optimistic concurrency.

A precondition lists the field values a record must still hold when a write
is committed. The store turns it into the WHERE clause of a single UPDATE, so
the check and the mutation happen atomically in the database.

Race condition this prevents:
T0: Event A reads fundraiser (match_funding_remaining=300)
T0: Event B reads fundraiser (match_funding_remaining=300)
T1: Event A credits 300, remaining becomes 0 ✓
T2: Event B credits 300 based on a stale pool ✗ CONFLICT, nothing written
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict

from donation_settlement.database.models import Base, PaymentStatus


class Precondition(BaseModel):
    """Expected prior field values of one record. Field names are column names."""

    model_config = ConfigDict(frozen=True)

    def expected_values(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class PaymentPrecondition(Precondition):
    """Amounts, reference and status of the payment are unchanged since the read."""

    reference: Optional[str]
    donation_amount: int
    contribution_amount: int
    match_funding_amount: Optional[int]
    status: PaymentStatus


class DonationPrecondition(Precondition):
    """
    Guards the per-donation match cap and the donor count.

    If another payment of the same donation credited match funding, or counted
    the donation, after our read, the cap or count we computed is stale.
    """

    match_funding_amount: int
    donation_counted: bool


class FundraiserPrecondition(Precondition):
    """The match funding pool and per-donation cap are unchanged since the read."""

    match_funding_remaining: Optional[int]
    match_funding_per_donation_limit: Optional[int]


@dataclass(frozen=True)
class ConditionalWrite:
    """
    One conditional mutation of one record.

    ``set_values`` are assigned, ``increments`` are added to the current column
    value (negative to decrement), and every column in ``keep_non_negative``
    must still be >= 0 after its increment is applied.
    """

    label: str
    model: Type[Base]
    key: Mapping[str, Any]
    precondition: Optional[Precondition] = None
    set_values: Mapping[str, Any] = field(default_factory=dict)
    increments: Mapping[str, int] = field(default_factory=dict)
    keep_non_negative: Tuple[str, ...] = ()


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a conditional write; a failed precondition is not an exception."""

    applied: bool
    failed_write: Optional[str] = None

    @classmethod
    def ok(cls) -> "WriteResult":
        return cls(applied=True)

    @classmethod
    def condition_failed(cls, label: str) -> "WriteResult":
        return cls(applied=False, failed_write=label)

