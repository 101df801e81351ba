"""
ProviderQuote model - a provider's priced offer against one RFQ.
"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.db.base import Base, TimestampMixin, status_enum

if TYPE_CHECKING:
    from marketplace.models.rfq import RequestForQuote


class QuoteStatus(str, enum.Enum):
    """Lifecycle status of a quote."""

    PENDING = "pending"         # Drafted, not yet binding
    SUBMITTED = "submitted"     # Binding offer awaiting a decision
    ACCEPTED = "accepted"       # Won the RFQ
    REJECTED = "rejected"       # Declined by the manager or lost to a sibling
    WITHDRAWN = "withdrawn"     # Pulled back by the provider
    EXPIRED = "expired"         # Validity period elapsed


class ProviderQuote(Base, TimestampMixin):
    """
    A quote submitted by a provider for an RFQ.

    ``price`` is always in the RFQ's currency; the service refuses anything
    else rather than converting.
    """

    __tablename__ = "provider_quotes"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_provider_quotes_price_non_negative"),
        CheckConstraint(
            "estimated_duration_days IS NULL OR estimated_duration_days >= 0",
            name="ck_provider_quotes_duration_non_negative",
        ),
        CheckConstraint(
            "warranty_period_days IS NULL OR warranty_period_days >= 0",
            name="ck_provider_quotes_warranty_non_negative",
        ),
        # One active quote per provider and RFQ
        Index(
            "uq_provider_quotes_active_per_provider",
            "rfq_id",
            "provider_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'submitted', 'accepted')"),
            sqlite_where=text("status IN ('pending', 'submitted', 'accepted')"),
        ),
    )

    rfq_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("requests_for_quote.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Provider directory id",
    )

    # Price
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    price_breakdown: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Timeline
    estimated_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    estimated_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    estimated_duration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Terms
    terms_and_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)
    warranty_period_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status
    status: Mapped[QuoteStatus] = mapped_column(
        status_enum(QuoteStatus, "quotestatus"),
        default=QuoteStatus.SUBMITTED,
        nullable=False,
        index=True,
    )
    valid_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status_changed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    rfq: Mapped["RequestForQuote"] = relationship(
        "RequestForQuote",
        back_populates="quotes",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<ProviderQuote(id={self.id}, rfq_id={self.rfq_id}, price={self.price}, status='{self.status.value}')>"
