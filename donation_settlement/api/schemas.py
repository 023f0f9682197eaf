"""
Pydantic schemas for API responses.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    status: str = Field(..., description="settled, already_settled or ignored")
    event_id: str = Field(..., description="Stripe event ID")
    payment_id: Optional[str] = Field(default=None, description="Settled payment ID")
    match_funding_amount: Optional[int] = Field(
        default=None, description="Match funding credited for the payment"
    )
    customer_id: Optional[str] = Field(
        default=None, description="Stripe customer created for recurring donations"
    )
    message: Optional[str] = Field(default=None, description="Status message")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "settled",
                    "event_id": "evt_1NG8Du2eZvKYlo2CUI79vXWy",
                    "payment_id": "pay_123",
                    "match_funding_amount": 300,
                    "customer_id": None,
                    "message": None,
                }
            ]
        }
    }


class ErrorDetail(BaseModel):
    """Why a webhook was rejected."""

    kind: str = Field(..., description="unauthorized, malformed, conflict or dependency")
    message: str = Field(..., description="Error message")
    reason: Optional[str] = Field(default=None, description="Validation reason code")
    failed_write: Optional[str] = Field(
        default=None, description="Record whose precondition failed on conflict"
    )


class ErrorResponse(BaseModel):
    """Body of a rejected webhook, as raised through HTTPException."""

    detail: ErrorDetail


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
