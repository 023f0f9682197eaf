"""
Stripe API client with retry logic and error classification.

Implements:
- Customer creation for donors who keep their payment method on file
- Exponential backoff for transient errors
- Circuit breaker pattern
- Idempotency keys so retried or redelivered calls create one customer
"""
import asyncio
import time
from enum import Enum
from typing import Any, Dict, Optional

import stripe
import structlog
from pydantic import BaseModel, ConfigDict
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from donation_settlement.config import Settings, get_settings
from donation_settlement.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class StripeErrorType(Enum):
    """Classification of Stripe errors for retry logic."""

    TRANSIENT = "transient"  # Retry these
    PERMANENT = "permanent"  # Don't retry these
    RATE_LIMIT = "rate_limit"  # Retry with backoff


class StripeError(Exception):
    """Base exception for Stripe-related errors."""

    def __init__(
        self,
        message: str,
        error_type: StripeErrorType,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize Stripe error.

        Args:
            message: Error message
            error_type: Classification of error
            original_error: Original Stripe exception
        """
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, StripeError) and error.error_type is not StripeErrorType.PERMANENT


class CircuitBreaker:
    """
    Circuit breaker for Stripe API calls.

    Prevents cascading failures by temporarily stopping requests
    when error rate exceeds threshold.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        success_threshold: int = 2,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            timeout: Seconds before attempting to close circuit
            success_threshold: Successful calls needed to close circuit
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"  # closed, open, half_open

    async def call(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """
        Run a blocking function in a worker thread with circuit breaker protection.

        Only ``func`` runs in the thread; state checks and failure counting
        stay on the event loop.

        Raises:
            StripeError: If circuit is open
        """
        self._ensure_callable()

        try:
            result = await asyncio.to_thread(func, *args, **kwargs)
        except Exception:
            self.on_failure()
            raise
        self.on_success()
        return result

    def _ensure_callable(self) -> None:
        if self.state == "open":
            if (
                self.last_failure_time
                and time.time() - self.last_failure_time > self.timeout
            ):
                self._set_state("half_open")
                self.success_count = 0
                logger.info("circuit_breaker_half_open")
            else:
                raise StripeError(
                    "Circuit breaker is open",
                    StripeErrorType.TRANSIENT,
                )

    def on_success(self) -> None:
        """Record successful call."""
        self.failure_count = 0
        if self.state == "half_open":
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self._set_state("closed")
                logger.info("circuit_breaker_closed")

    def on_failure(self) -> None:
        """Record failed call."""
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.failure_count >= self.failure_threshold:
            self._set_state("open")
            logger.warning(
                "circuit_breaker_opened",
                failure_count=self.failure_count,
            )

    def _set_state(self, state: str) -> None:
        self.state = state
        metrics.set_circuit_breaker_state(state)


class CustomerProfile(BaseModel):
    """Donor details sent to Stripe when creating a customer."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    fundraiser_id: str
    donation_id: str

    def stripe_metadata(self) -> Dict[str, str]:
        return {"fundraiserId": self.fundraiser_id, "donationId": self.donation_id}


class StripeClient:
    """
    Wrapper for the Stripe API used by recurring-donation setup.

    Features:
    - Automatic retry with exponential backoff for non-permanent errors
    - Circuit breaker pattern
    - Comprehensive error classification
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        retry_wait: Optional[wait_base] = None,
    ) -> None:
        """
        Initialize Stripe client.

        Args:
            settings: Optional settings (loaded from the environment if omitted)
            retry_wait: Optional tenacity wait strategy between retries
        """
        settings = settings or get_settings()
        stripe.api_key = settings.stripe_secret_key
        stripe.api_version = settings.stripe_api_version
        stripe.max_network_retries = settings.stripe_max_network_retries
        stripe.default_http_client = stripe.RequestsClient(
            timeout=settings.stripe_timeout_seconds
        )
        self.settings = settings
        self.circuit_breaker = CircuitBreaker()
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=8)

        logger.info(
            "stripe_client_initialized",
            api_version=stripe.api_version,
            test_mode=settings.is_test_mode,
        )

    @staticmethod
    def _classify_error(error: stripe.StripeError) -> StripeErrorType:
        """
        Classify Stripe error for retry logic.

        Args:
            error: Stripe error

        Returns:
            StripeErrorType: Error classification
        """
        if isinstance(error, stripe.RateLimitError):
            return StripeErrorType.RATE_LIMIT
        elif isinstance(error, (stripe.APIConnectionError, stripe.APIError)):
            return StripeErrorType.TRANSIENT
        elif isinstance(
            error,
            (stripe.CardError, stripe.InvalidRequestError, stripe.AuthenticationError),
        ):
            return StripeErrorType.PERMANENT
        else:
            # Unknown errors are treated as transient
            return StripeErrorType.TRANSIENT

    def _handle_stripe_error(self, error: stripe.StripeError, operation: str) -> StripeError:
        """Classify, record and wrap a Stripe SDK error."""
        error_type = self._classify_error(error)

        logger.error(
            "stripe_api_error",
            operation=operation,
            error_type=error_type.value,
            error_code=getattr(error, "code", None),
            error_message=str(error),
        )
        metrics.record_stripe_api_error(error_type.value)

        return StripeError(
            message=str(error),
            error_type=error_type,
            original_error=error,
        )

    async def create_customer(
        self,
        profile: CustomerProfile,
        payment_method: str,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """
        Create a Stripe customer with the payment method attached.

        Args:
            profile: Donor name, email and the ids stored as customer metadata
            payment_method: Stripe PaymentMethod id to attach
            idempotency_key: Idempotency key for preventing duplicate customers

        Returns:
            str: Stripe customer id

        Raises:
            StripeError: If customer creation fails after retries
        """
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.settings.billing_retry_attempts),
            wait=self.retry_wait,
            reraise=True,
        ):
            with attempt:
                return await self._create_customer_once(profile, payment_method, idempotency_key)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _create_customer_once(
        self,
        profile: CustomerProfile,
        payment_method: str,
        idempotency_key: Optional[str],
    ) -> str:
        logger.info(
            "creating_stripe_customer",
            fundraiser_id=profile.fundraiser_id,
            donation_id=profile.donation_id,
            idempotency_key=idempotency_key,
        )

        def _create() -> stripe.Customer:
            kwargs: Dict[str, Any] = {
                "name": profile.name,
                "email": profile.email,
                "metadata": profile.stripe_metadata(),
                "payment_method": payment_method,
            }
            if idempotency_key:
                kwargs["idempotency_key"] = idempotency_key
            return stripe.Customer.create(**kwargs)

        start_time = time.time()
        try:
            customer = await self.circuit_breaker.call(_create)
        except stripe.StripeError as e:
            metrics.record_stripe_api_call("create_customer", "error", time.time() - start_time)
            raise self._handle_stripe_error(e, "create_customer") from e

        metrics.record_stripe_api_call("create_customer", "success", time.time() - start_time)
        logger.info("stripe_customer_created", customer_id=customer.id)
        return customer.id
