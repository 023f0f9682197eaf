"""
Stripe webhook handler with signature verification and event routing.

Implements:
- Webhook signature verification via the Stripe SDK
- Parsing of the verified payload into typed event models
- Event type routing to registered handlers

Deduplication is not done here: a redelivered payment_intent.succeeded event
is a no-op because the payment is no longer pending.
"""
from typing import Any, Awaitable, Callable, Dict, Optional

import pydantic
import stripe
import structlog

from donation_settlement.config import get_settings
from donation_settlement.errors import (
    SettlementValidationError,
    ValidationReason,
    WebhookAuthError,
)
from donation_settlement.integrations.stripe_events import StripeEvent

logger = structlog.get_logger(__name__)

EventHandler = Callable[[StripeEvent], Awaitable[Dict[str, Any]]]


class WebhookHandler:
    """
    Handles Stripe webhook events.

    Features:
    - Signature verification using Stripe webhook secrets
    - Event type routing to appropriate handlers
    """

    def __init__(self, webhook_secret: Optional[str] = None):
        """
        Initialize webhook handler.

        Args:
            webhook_secret: Optional signing secret (uses config if not provided)
        """
        self.webhook_secret = webhook_secret or get_settings().stripe_webhook_secret
        self.event_handlers: Dict[str, EventHandler] = {}

        logger.info("webhook_handler_initialized")

    def register_handler(self, event_type: str, handler: EventHandler) -> None:
        """
        Register a handler for a specific event type.

        Args:
            event_type: Stripe event type (e.g., 'payment_intent.succeeded')
            handler: Async callable receiving the verified event
        """
        self.event_handlers[event_type] = handler
        logger.info("webhook_handler_registered", event_type=event_type)

    def verify_signature(
        self, payload: bytes, signature: Optional[str], secret: Optional[str] = None
    ) -> StripeEvent:
        """
        Verify webhook signature and parse the event.

        Args:
            payload: Raw request body as bytes
            signature: Stripe-Signature header value
            secret: Optional webhook secret (uses the handler's secret if not provided)

        Returns:
            StripeEvent: Verified event

        Raises:
            WebhookAuthError: If the signature is missing or invalid
            SettlementValidationError: If the signed payload is not a Stripe event
        """
        if not signature:
            logger.warning("webhook_signature_missing")
            raise WebhookAuthError("Missing Stripe-Signature header")

        try:
            stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=secret or self.webhook_secret,
            )
        except stripe.SignatureVerificationError as e:
            logger.error("webhook_signature_verification_failed", error=str(e))
            raise WebhookAuthError("Failed to validate webhook signature") from e
        except UnicodeDecodeError as e:
            # Stripe only signs UTF-8 JSON; the SDK decodes before checking the signature.
            logger.error("webhook_payload_not_utf8", error=str(e))
            raise WebhookAuthError("Failed to validate webhook signature") from e
        except ValueError as e:
            # Signed, but not JSON
            logger.error("webhook_payload_invalid", error=str(e))
            raise SettlementValidationError(
                f"Invalid webhook payload: {e}", ValidationReason.MALFORMED_EVENT
            ) from e

        try:
            event = StripeEvent.model_validate_json(payload)
        except pydantic.ValidationError as e:
            logger.error("webhook_event_malformed", error=str(e))
            raise SettlementValidationError(
                f"Malformed Stripe event: {e}", ValidationReason.MALFORMED_EVENT
            ) from e

        logger.info(
            "webhook_signature_verified",
            event_id=event.id,
            event_type=event.type,
        )
        return event

    async def process_event(self, event: StripeEvent) -> Dict[str, Any]:
        """
        Route a verified event to its handler.

        Args:
            event: Verified Stripe event

        Returns:
            Dict[str, Any]: Processing result with at least ``status`` and ``event_id``
        """
        logger.info(
            "processing_webhook_event",
            event_id=event.id,
            event_type=event.type,
        )

        handler = self.event_handlers.get(event.type)
        if handler is None:
            logger.info(
                "webhook_no_handler",
                event_id=event.id,
                event_type=event.type,
            )
            return {
                "status": "ignored",
                "event_id": event.id,
                "message": f"No handler registered for event type: {event.type}",
            }

        result = await handler(event)

        logger.info(
            "webhook_event_processed",
            event_id=event.id,
            event_type=event.type,
            status=result.get("status"),
        )
        return {"event_id": event.id, **result}
