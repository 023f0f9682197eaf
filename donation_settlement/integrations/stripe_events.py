"""
Pydantic models for the parts of a Stripe webhook event the service reads.

Only ``payment_intent.succeeded`` payloads are parsed into a PaymentIntent;
other event types are routed on ``type`` alone.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentIntentMetadata(BaseModel):
    """Identifiers attached to the PaymentIntent by the checkout flow."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    fundraiser_id: str = Field(..., alias="fundraiserId", min_length=1)
    donation_id: str = Field(..., alias="donationId", min_length=1)
    payment_id: str = Field(..., alias="paymentId", min_length=1)


class PaymentIntent(BaseModel):
    """A confirmed Stripe PaymentIntent."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = Field(..., description="Stripe PaymentIntent id, stored as the payment reference")
    amount: int = Field(..., ge=0)
    amount_received: int = Field(..., ge=0)
    setup_future_usage: Optional[str] = Field(
        default=None, description="Set when the payment method is kept for future charges"
    )
    payment_method: Optional[str] = None
    metadata: PaymentIntentMetadata

    @property
    def wants_recurring_setup(self) -> bool:
        return self.setup_future_usage is not None


class StripeEventData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    object_: Dict[str, Any] = Field(..., alias="object")


class StripeEvent(BaseModel):
    """Envelope of a verified Stripe webhook event."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    data: StripeEventData
