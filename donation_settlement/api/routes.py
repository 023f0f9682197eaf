"""
API routes for the settlement service.
"""
import time
from functools import lru_cache
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from donation_settlement.core.engine import SettlementEngine
from donation_settlement.database import SettlementStore, get_session_factory
from donation_settlement.errors import (
    BillingDependencyError,
    RecordNotFoundError,
    SettlementConflictError,
    SettlementError,
    SettlementValidationError,
    WebhookAuthError,
)
from donation_settlement.integrations.stripe_client import StripeClient
from donation_settlement.integrations.webhook_handler import WebhookHandler
from donation_settlement.monitoring.health import HealthCheck
from donation_settlement.monitoring.metrics import metrics

from .schemas import ErrorResponse, HealthCheckResponse, WebhookResponse

logger = structlog.get_logger(__name__)

# Create routers
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
monitoring_router = APIRouter(tags=["monitoring"])

health_check = HealthCheck()

PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"


@lru_cache()
def get_settlement_engine() -> SettlementEngine:
    """Build the process-wide settlement engine on first use."""
    store = SettlementStore(get_session_factory())
    return SettlementEngine(store=store, billing=StripeClient())


@lru_cache()
def get_webhook_handler() -> WebhookHandler:
    """Webhook handler with settlement registered for succeeded payment intents."""
    handler = WebhookHandler()
    handler.register_handler(
        PAYMENT_INTENT_SUCCEEDED, get_settlement_engine().handle_payment_intent_succeeded
    )
    return handler


def _status_code_for(error: SettlementError) -> int:
    if isinstance(error, WebhookAuthError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(error, RecordNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, SettlementValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, SettlementConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, BillingDependencyError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@webhook_router.post(
    "/stripe",
    response_model=WebhookResponse,
    summary="Stripe webhook endpoint",
    description="Settle donation payments confirmed by Stripe",
    responses={
        401: {"model": ErrorResponse},
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> Dict[str, Any]:
    """
    Handle Stripe webhook events.

    Verifies the signature, then routes the event. Replays of an already
    settled payment return ``already_settled``.
    """
    start_time = time.time()
    event_type = "unknown"

    try:
        body = await request.body()
        event = handler.verify_signature(body, stripe_signature)
        event_type = event.type

        structlog.contextvars.bind_contextvars(event_id=event.id)
        logger.info("api_webhook_received", event_type=event.type)

        result = await handler.process_event(event)

        metrics.record_webhook_event(event_type, result["status"], time.time() - start_time)
        return result

    except SettlementError as e:
        status_code = _status_code_for(e)
        log = logger.error if status_code >= 500 else logger.warning
        log("api_webhook_rejected", kind=e.kind.value, status_code=status_code, error=str(e))
        metrics.record_webhook_event(event_type, e.kind.value, time.time() - start_time)
        raise HTTPException(status_code=status_code, detail=e.to_dict())


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health() -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return await health_check.check_all()


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
    description="Kubernetes liveness probe endpoint",
)
async def liveness() -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
    description="Kubernetes readiness probe endpoint",
)
async def readiness() -> Dict[str, Any]:
    """Readiness probe endpoint."""
    result = await health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
