"""Core settlement logic."""
from .allocator import allocate_match_funding
from .engine import (
    SettlementEngine,
    SettlementOutcome,
    SettlementStage,
    SettlementStatus,
)
from .recurring import RecurringSetup
from .validator import ValidationResult, ensure_full_capture, validate_confirmation
from .writer import AtomicSettlementWriter

__all__ = [
    "AtomicSettlementWriter",
    "RecurringSetup",
    "SettlementEngine",
    "SettlementOutcome",
    "SettlementStage",
    "SettlementStatus",
    "ValidationResult",
    "allocate_match_funding",
    "ensure_full_capture",
    "validate_confirmation",
]
