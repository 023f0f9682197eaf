"""SQLAlchemy database models for fundraisers, donations and payments."""
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class PaymentStatus(str, Enum):
    """Payment lifecycle states. Only pending -> paid is driven by settlement."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    FAILED = "failed"
    REFUNDED = "refunded"


class Fundraiser(Base):
    """
    Fundraisers table.

    Holds the running totals credited by settled payments and the match
    funding configuration (rate, remaining pool, per-donation cap).
    A null pool or cap means unlimited.
    """

    __tablename__ = "fundraisers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_raised: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    donations_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    match_funding_rate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    match_funding_remaining: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    match_funding_per_donation_limit: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("total_raised >= 0", name="non_negative_total_raised"),
        CheckConstraint("match_funding_rate >= 0", name="non_negative_match_funding_rate"),
        CheckConstraint(
            "match_funding_remaining IS NULL OR match_funding_remaining >= 0",
            name="non_negative_match_funding_remaining",
        ),
    )

    def __repr__(self) -> str:
        """String representation of Fundraiser."""
        return (
            f"<Fundraiser(id={self.id}, total_raised={self.total_raised}, "
            f"match_funding_remaining={self.match_funding_remaining})>"
        )


class Donation(Base):
    """
    Donations table.

    Accumulates the amounts of its settled payments. ``donation_counted`` flips
    to true the first time one of its payments settles, so the fundraiser's
    donor count is incremented once per donation rather than once per payment.
    """

    __tablename__ = "donations"

    fundraiser_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("fundraisers.id"), primary_key=True
    )
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    donor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    donor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    donation_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    contribution_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    match_funding_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    donation_counted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_payment_method_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("id", name="uq_donations_id"),
    )

    def __repr__(self) -> str:
        """String representation of Donation."""
        return (
            f"<Donation(id={self.id}, fundraiser_id={self.fundraiser_id}, "
            f"donation_amount={self.donation_amount})>"
        )


class Payment(Base):
    """
    Payments table.

    Created as ``pending`` by the checkout flow. ``reference`` is the Stripe
    PaymentIntent id and never changes once set. A null
    ``match_funding_amount`` means the amount is decided at settlement.
    """

    __tablename__ = "payments"

    donation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("donations.id"), primary_key=True
    )
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    donation_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    contribution_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    match_funding_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("donation_amount >= 0", name="non_negative_donation_amount"),
        CheckConstraint("contribution_amount >= 0", name="non_negative_contribution_amount"),
        CheckConstraint(
            "status IN ('pending', 'paid', 'cancelled', 'failed', 'refunded')",
            name="valid_status",
        ),
    )

    def __repr__(self) -> str:
        """String representation of Payment."""
        return (
            f"<Payment(id={self.id}, donation_id={self.donation_id}, "
            f"status={self.status})>"
        )
