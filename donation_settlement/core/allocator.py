"""Match funding allocation for a single payment."""
import math

from donation_settlement.core.snapshot import (
    DonationSnapshot,
    FundraiserSnapshot,
    PaymentSnapshot,
)


def allocate_match_funding(
    payment: PaymentSnapshot,
    donation: DonationSnapshot,
    fundraiser: FundraiserSnapshot,
) -> int:
    """
    Compute the match funding to credit for this payment.

    A match funding amount already pinned on the payment is authoritative.
    Otherwise the rate is applied to the donation amount (not the
    contribution) and the result is capped, in this order, by the remaining
    pool, by what is left of the per-donation limit, and finally floored at
    zero. A null pool or limit is unbounded.

    Example: donation 1000 at 50% with 300 left in the pool -> 300.
    """
    if payment.match_funding_amount is not None:
        return payment.match_funding_amount

    allocated = payment.donation_amount * fundraiser.match_funding_rate // 100

    remaining_pool = (
        fundraiser.match_funding_remaining
        if fundraiser.match_funding_remaining is not None
        else math.inf
    )
    remaining_for_donation = (
        fundraiser.match_funding_per_donation_limit - donation.match_funding_amount
        if fundraiser.match_funding_per_donation_limit is not None
        else math.inf
    )

    return int(max(min(allocated, remaining_pool, remaining_for_donation), 0))
