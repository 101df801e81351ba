"""
RequestForQuote and RfqInvitation models.

An RFQ is a property manager's solicitation for a service job. The set of
invited providers is stored as invitation rows, one per provider, and is
frozen once the RFQ leaves ``draft``.
"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.db.base import Base, TimestampMixin, status_enum

if TYPE_CHECKING:
    from marketplace.models.quote import ProviderQuote


class RfqStatus(str, enum.Enum):
    """Lifecycle status of an RFQ."""

    DRAFT = "draft"                       # Being prepared by the manager
    SENT = "sent"                         # Invitations out, waiting for quotes
    QUOTES_RECEIVED = "quotes_received"   # At least one quote submitted
    AWARDED = "awarded"                   # One quote accepted
    CANCELLED = "cancelled"               # Withdrawn by the manager
    EXPIRED = "expired"                   # Quote deadline passed


class ServiceCategory(str, enum.Enum):
    """Kind of work the RFQ asks for."""

    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    HVAC = "hvac"
    CLEANING = "cleaning"
    LANDSCAPING = "landscaping"
    SECURITY = "security"
    PAINTING = "painting"
    ROOFING = "roofing"
    CARPENTRY = "carpentry"
    LOCKSMITH = "locksmith"
    PEST_CONTROL = "pest_control"
    GENERAL_MAINTENANCE = "general_maintenance"
    ELEVATOR_MAINTENANCE = "elevator_maintenance"
    FIRE_SAFETY = "fire_safety"
    WASTE_MANAGEMENT = "waste_management"
    OTHER = "other"


class ContactPreference(str, enum.Enum):
    """How the manager wants providers to get in touch."""

    EMAIL = "email"
    PHONE = "phone"
    ANY = "any"


class RequestForQuote(Base, TimestampMixin):
    """
    A request for quote sent by a manager to one or more providers.

    Attributes:
        title: Short job title shown to providers
        service_category: Category of the requested work
        budget_min / budget_max: Optional budget range in ``currency``
        quote_deadline: Instant after which no more quotes are accepted
        status: Current lifecycle status (see ``RfqStatus``)
        awarded_quote_id: Accepted quote once the RFQ is awarded
    """

    __tablename__ = "requests_for_quote"

    # Ownership
    building_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    # Details
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    service_category: Mapped[ServiceCategory] = mapped_column(
        status_enum(ServiceCategory, "servicecategory"),
        nullable=False,
        index=True,
    )
    scope_of_work: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timeline
    preferred_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    preferred_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_urgent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Budget
    budget_min: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    budget_max: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)

    # Status and dates
    status: Mapped[RfqStatus] = mapped_column(
        status_enum(RfqStatus, "rfqstatus"),
        default=RfqStatus.DRAFT,
        nullable=False,
        index=True,
    )
    quote_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    awarded_quote_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    awarded_to: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    awarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Contact preferences
    contact_preference: Mapped[ContactPreference] = mapped_column(
        status_enum(ContactPreference, "contactpreference"),
        default=ContactPreference.ANY,
        nullable=False,
    )
    site_visit_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # "metadata" is reserved on declarative classes
    extra_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    # Relationships
    invitations: Mapped[list["RfqInvitation"]] = relationship(
        "RfqInvitation",
        back_populates="rfq",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RfqInvitation.provider_id",
    )
    quotes: Mapped[list["ProviderQuote"]] = relationship(
        "ProviderQuote",
        back_populates="rfq",
        cascade="all, delete-orphan",
        lazy="noload",
        passive_deletes=True,
    )

    @property
    def invited_provider_ids(self) -> list[uuid.UUID]:
        """Providers invited to quote."""
        return [invitation.provider_id for invitation in self.invitations]

    def __repr__(self) -> str:
        return f"<RequestForQuote(id={self.id}, title='{self.title[:50]}', status='{self.status.value}')>"


class RfqInvitation(Base, TimestampMixin):
    """
    Invitation of one provider to quote on one RFQ.

    ``invited_at`` is stamped when the RFQ is sent; ``responded_at`` when the
    provider submits a quote.
    """

    __tablename__ = "rfq_invitations"
    __table_args__ = (
        UniqueConstraint("rfq_id", "provider_id", name="uq_rfq_invitations_rfq_provider"),
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

    invited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    declined: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    decline_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    rfq: Mapped["RequestForQuote"] = relationship(
        "RequestForQuote",
        back_populates="invitations",
    )

    def __repr__(self) -> str:
        return f"<RfqInvitation(rfq_id={self.rfq_id}, provider_id={self.provider_id}, declined={self.declined})>"
