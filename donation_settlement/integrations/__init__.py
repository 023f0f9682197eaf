"""External integrations: Stripe API and Stripe webhooks."""
from .stripe_client import CustomerProfile, StripeClient, StripeError, StripeErrorType
from .stripe_events import PaymentIntent, PaymentIntentMetadata, StripeEvent
from .webhook_handler import WebhookHandler

__all__ = [
    "CustomerProfile",
    "PaymentIntent",
    "PaymentIntentMetadata",
    "StripeClient",
    "StripeError",
    "StripeErrorType",
    "StripeEvent",
    "WebhookHandler",
]
