"""
Settlement engine: applies one payment confirmation exactly once.

The pipeline is an explicit sequence of named stages:

1. check_capture    - the whole amount was received
2. load_snapshot    - fetch payment, donation and fundraiser concurrently
3. validate         - reconcile amounts, reference and status
                      (an already paid payment finishes here as a no-op)
4. allocate         - compute the match funding to credit
5. setup_recurring  - create the billing customer if requested
6. commit           - conditional three-record write, all or nothing

Each stage either advances or finishes the pipeline with an outcome. Errors
propagate as SettlementError subclasses; the engine never retries. There is
no in-process locking: concurrent deliveries are resolved by the conditional
write in the commit stage.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import pydantic
import structlog

from donation_settlement.core.allocator import allocate_match_funding
from donation_settlement.core.recurring import BillingProvider, RecurringSetup
from donation_settlement.core.snapshot import SettlementSnapshot, load_snapshot
from donation_settlement.core.validator import (
    ValidationResult,
    ensure_full_capture,
    validate_confirmation,
)
from donation_settlement.core.writer import AtomicSettlementWriter
from donation_settlement.database import SettlementStore
from donation_settlement.errors import (
    ErrorKind,
    SettlementError,
    SettlementValidationError,
    ValidationReason,
)
from donation_settlement.integrations.stripe_events import PaymentIntent, StripeEvent
from donation_settlement.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class SettlementStage(str, Enum):
    """Named pipeline stages, in execution order."""

    CHECK_CAPTURE = "check_capture"
    LOAD_SNAPSHOT = "load_snapshot"
    VALIDATE = "validate"
    ALLOCATE = "allocate"
    SETUP_RECURRING = "setup_recurring"
    COMMIT = "commit"


class SettlementStatus(str, Enum):
    SETTLED = "settled"
    ALREADY_SETTLED = "already_settled"


@dataclass(frozen=True)
class SettlementOutcome:
    """Successful result of handling one confirmation."""

    status: SettlementStatus
    payment_id: str
    match_funding_amount: Optional[int] = None
    customer_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "payment_id": self.payment_id,
            "match_funding_amount": self.match_funding_amount,
            "customer_id": self.customer_id,
        }


@dataclass
class SettlementContext:
    """State carried from one stage to the next for a single event."""

    intent: PaymentIntent
    snapshot: Optional[SettlementSnapshot] = None
    match_funding_amount: Optional[int] = None
    customer_id: Optional[str] = None

    def require_snapshot(self) -> SettlementSnapshot:
        if self.snapshot is None:
            raise RuntimeError("snapshot has not been loaded")
        return self.snapshot


@dataclass(frozen=True)
class StageResult:
    """Either advance to the next stage or finish with an outcome."""

    outcome: Optional[SettlementOutcome] = None

    @property
    def advances(self) -> bool:
        return self.outcome is None

    @classmethod
    def advance(cls) -> "StageResult":
        return cls()

    @classmethod
    def finish(cls, outcome: SettlementOutcome) -> "StageResult":
        return cls(outcome=outcome)


StageHandler = Callable[[SettlementContext], Awaitable[StageResult]]


class SettlementEngine:
    """
    Orchestrates validation, allocation, recurring setup and the atomic write.

    One instance is shared by all requests; it holds no per-event state.
    """

    def __init__(self, store: SettlementStore, billing: BillingProvider):
        """
        Initialize settlement engine.

        Args:
            store: Record reads and conditional writes
            billing: Billing provider used for recurring setup
        """
        self.store = store
        self.recurring = RecurringSetup(billing, store)
        self.writer = AtomicSettlementWriter(store)
        self._stages: List[Tuple[SettlementStage, StageHandler]] = [
            (SettlementStage.CHECK_CAPTURE, self._check_capture),
            (SettlementStage.LOAD_SNAPSHOT, self._load_snapshot),
            (SettlementStage.VALIDATE, self._validate),
            (SettlementStage.ALLOCATE, self._allocate),
            (SettlementStage.SETUP_RECURRING, self._setup_recurring),
            (SettlementStage.COMMIT, self._commit),
        ]

    async def settle(self, intent: PaymentIntent) -> SettlementOutcome:
        """
        Settle the payment confirmed by ``intent``.

        Returns:
            SettlementOutcome: ``settled`` or ``already_settled``

        Raises:
            SettlementValidationError: The event can never be applied
            SettlementConflictError: A record changed since it was read
            BillingDependencyError: Recurring setup failed
        """
        context = SettlementContext(intent=intent)
        metadata = intent.metadata

        with structlog.contextvars.bound_contextvars(
            payment_id=metadata.payment_id,
            donation_id=metadata.donation_id,
            fundraiser_id=metadata.fundraiser_id,
            payment_intent_id=intent.id,
        ):
            logger.info("settlement_started", amount=intent.amount)

            for stage, run in self._stages:
                try:
                    result = await run(context)
                except SettlementError as e:
                    logger.warning(
                        "settlement_stage_failed",
                        stage=stage.value,
                        kind=e.kind.value,
                        error=str(e),
                    )
                    metrics.record_settlement_failure(e.kind.value)
                    raise

                if not result.advances:
                    outcome = result.outcome
                    logger.info(
                        "settlement_finished_early",
                        stage=stage.value,
                        status=outcome.status.value,
                    )
                    metrics.record_settlement(outcome.status.value)
                    return outcome

            outcome = SettlementOutcome(
                status=SettlementStatus.SETTLED,
                payment_id=metadata.payment_id,
                match_funding_amount=context.match_funding_amount,
                customer_id=context.customer_id,
            )
            logger.info(
                "settlement_completed",
                match_funding_amount=context.match_funding_amount,
            )
            metrics.record_settlement(outcome.status.value, context.match_funding_amount)
            return outcome

    async def handle_payment_intent_succeeded(self, event: StripeEvent) -> Dict[str, Any]:
        """
        Webhook handler for ``payment_intent.succeeded``.

        Raises:
            SettlementValidationError: If the event object is not a usable PaymentIntent
        """
        try:
            intent = PaymentIntent.model_validate(event.data.object_)
        except pydantic.ValidationError as e:
            logger.error("payment_intent_malformed", event_id=event.id, error=str(e))
            metrics.record_settlement_failure(ErrorKind.MALFORMED.value)
            raise SettlementValidationError(
                f"Malformed payment intent: {e}", ValidationReason.MALFORMED_EVENT
            ) from e

        outcome = await self.settle(intent)
        return outcome.to_dict()

    async def _check_capture(self, context: SettlementContext) -> StageResult:
        ensure_full_capture(context.intent)
        return StageResult.advance()

    async def _load_snapshot(self, context: SettlementContext) -> StageResult:
        context.snapshot = await load_snapshot(self.store, context.intent.metadata)
        return StageResult.advance()

    async def _validate(self, context: SettlementContext) -> StageResult:
        snapshot = context.require_snapshot()
        if validate_confirmation(context.intent, snapshot) is ValidationResult.ALREADY_SETTLED:
            return StageResult.finish(
                SettlementOutcome(
                    status=SettlementStatus.ALREADY_SETTLED,
                    payment_id=snapshot.payment.id,
                    match_funding_amount=snapshot.payment.match_funding_amount,
                )
            )
        return StageResult.advance()

    async def _allocate(self, context: SettlementContext) -> StageResult:
        snapshot = context.require_snapshot()
        context.match_funding_amount = allocate_match_funding(
            snapshot.payment, snapshot.donation, snapshot.fundraiser
        )
        logger.info("match_funding_allocated", amount=context.match_funding_amount)
        return StageResult.advance()

    async def _setup_recurring(self, context: SettlementContext) -> StageResult:
        context.customer_id = await self.recurring.register(
            context.intent, context.require_snapshot()
        )
        return StageResult.advance()

    async def _commit(self, context: SettlementContext) -> StageResult:
        if context.match_funding_amount is None:
            raise RuntimeError("match funding has not been allocated")
        await self.writer.commit(context.require_snapshot(), context.match_funding_amount)
        return StageResult.advance()
