"""
Recurring donation setup.

When the donor asked to keep their payment method for future charges, a
Stripe customer is created with that payment method attached and the ids are
saved on the donation. This happens before the settlement write and outside
it; any failure aborts the settlement before financial state is touched.
"""
from typing import Optional, Protocol

import structlog

from donation_settlement.core.snapshot import SettlementSnapshot
from donation_settlement.database import ConditionalWrite, Donation, SettlementStore
from donation_settlement.errors import (
    BillingDependencyError,
    RecordNotFoundError,
    SettlementValidationError,
    ValidationReason,
)
from donation_settlement.integrations.stripe_client import CustomerProfile, StripeError
from donation_settlement.integrations.stripe_events import PaymentIntent

logger = structlog.get_logger(__name__)


class BillingProvider(Protocol):
    """Interface for the billing provider that stores customers for future charges."""

    async def create_customer(
        self,
        profile: CustomerProfile,
        payment_method: str,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """Create a customer with the payment method attached; return its id."""
        ...


class RecurringSetup:
    """Registers a donor with the billing provider for future charges."""

    def __init__(self, billing: BillingProvider, store: SettlementStore):
        self.billing = billing
        self.store = store

    async def register(
        self, intent: PaymentIntent, snapshot: SettlementSnapshot
    ) -> Optional[str]:
        """
        Create the billing customer and persist it on the donation.

        Returns:
            Optional[str]: The customer id, or None when no setup was requested

        Raises:
            BillingDependencyError: If the billing provider call fails
            SettlementValidationError: If the event requests setup without a payment method
        """
        if not intent.wants_recurring_setup:
            return None

        if not intent.payment_method:
            raise SettlementValidationError(
                "setup_future_usage is set but the payment intent has no payment_method",
                ValidationReason.MALFORMED_EVENT,
            )

        donation = snapshot.donation
        profile = CustomerProfile(
            name=donation.donor_name,
            email=donation.donor_email,
            fundraiser_id=donation.fundraiser_id,
            donation_id=donation.id,
        )

        try:
            customer_id = await self.billing.create_customer(
                profile,
                intent.payment_method,
                idempotency_key=f"customer:{donation.id}:{snapshot.payment.id}",
            )
        except StripeError as e:
            logger.error(
                "recurring_setup_customer_failed",
                donation_id=donation.id,
                error=str(e),
                error_type=e.error_type.value,
            )
            raise BillingDependencyError(
                f"Failed to create billing customer: {e}", original_error=e
            ) from e

        result = await self.store.update(
            ConditionalWrite(
                label="donation_billing",
                model=Donation,
                key={"fundraiser_id": donation.fundraiser_id, "id": donation.id},
                set_values={
                    "stripe_customer_id": customer_id,
                    "stripe_payment_method_id": intent.payment_method,
                },
            )
        )
        if not result.applied:
            raise RecordNotFoundError(
                Donation.__tablename__,
                {"fundraiser_id": donation.fundraiser_id, "id": donation.id},
            )

        logger.info(
            "recurring_setup_completed",
            donation_id=donation.id,
            customer_id=customer_id,
        )
        return customer_id
