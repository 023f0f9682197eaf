"""Database package for the settlement service."""
from .connection import close_db, get_session_factory, init_db
from .models import Base, Donation, Fundraiser, Payment, PaymentStatus
from .preconditions import (
    ConditionalWrite,
    DonationPrecondition,
    FundraiserPrecondition,
    PaymentPrecondition,
    WriteResult,
)
from .store import SettlementStore

__all__ = [
    "Base",
    "ConditionalWrite",
    "Donation",
    "DonationPrecondition",
    "Fundraiser",
    "FundraiserPrecondition",
    "Payment",
    "PaymentPrecondition",
    "PaymentStatus",
    "SettlementStore",
    "WriteResult",
    "close_db",
    "get_session_factory",
    "init_db",
]
