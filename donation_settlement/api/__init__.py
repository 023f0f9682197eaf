"""FastAPI application and routes."""
from .main import app
from .schemas import ErrorDetail, ErrorResponse, HealthCheckResponse, WebhookResponse

__all__ = [
    "app",
    "ErrorDetail",
    "ErrorResponse",
    "HealthCheckResponse",
    "WebhookResponse",
]
