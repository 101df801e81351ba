"""
Provider models - local copy of the provider directory, with the reviews
and verification documents that feed its reputation fields.

Only the fields the RFQ workflow reads are kept on ServiceProvider: who the
provider is, how well they are rated and whether their credentials were
verified. Invitations and quotes reference providers by id only, so the same
ids can come from a remote directory instead.
"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.db.base import Base, TimestampMixin, status_enum


class VerificationType(str, enum.Enum):
    """Kind of credential a provider submits."""

    BUSINESS_REGISTRATION = "business_registration"
    INSURANCE = "insurance"
    CERTIFICATION = "certification"
    LICENSE = "license"
    IDENTITY = "identity"


class VerificationStatus(str, enum.Enum):
    """Review status of a verification document."""

    PENDING = "pending"             # Submitted, nobody has looked yet
    UNDER_REVIEW = "under_review"   # Picked up by a reviewer
    VERIFIED = "verified"           # Approved
    REJECTED = "rejected"           # Refused, see rejection_reason


class ServiceProvider(Base, TimestampMixin):
    """A company that can be invited to quote."""

    __tablename__ = "service_providers"
    __table_args__ = (
        CheckConstraint(
            "rating IS NULL OR (rating >= 0 AND rating <= 5)",
            name="ck_service_providers_rating_range",
        ),
    )

    company_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Reputation, maintained from provider_reviews and provider_verifications
    rating: Mapped[Decimal | None] = mapped_column(
        Numeric(3, 2),
        nullable=True,
        comment="Average review rating 0.00-5.00, NULL when unrated",
    )
    review_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<ServiceProvider(id={self.id}, company_name='{self.company_name}')>"


class ProviderReview(Base, TimestampMixin):
    """
    A property manager's review of a provider.

    Four dimensions are rated 1-5; ``overall_rating`` is their average,
    rounded half up.
    """

    __tablename__ = "provider_reviews"
    __table_args__ = (
        CheckConstraint("quality_rating BETWEEN 1 AND 5", name="ck_provider_reviews_quality_range"),
        CheckConstraint("timeliness_rating BETWEEN 1 AND 5", name="ck_provider_reviews_timeliness_range"),
        CheckConstraint("communication_rating BETWEEN 1 AND 5", name="ck_provider_reviews_communication_range"),
        CheckConstraint("value_rating BETWEEN 1 AND 5", name="ck_provider_reviews_value_range"),
        CheckConstraint("overall_rating BETWEEN 1 AND 5", name="ck_provider_reviews_overall_range"),
        # At most one review per awarded RFQ
        UniqueConstraint("provider_id", "rfq_id", name="uq_provider_reviews_provider_rfq"),
    )

    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("service_providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rfq_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("requests_for_quote.id", ondelete="SET NULL"),
        nullable=True,
    )
    reviewer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    quality_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    timeliness_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    communication_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    value_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    overall_rating: Mapped[int] = mapped_column(Integer, nullable=False)

    review_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    review_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ProviderReview(id={self.id}, provider_id={self.provider_id}, overall={self.overall_rating})>"


class ProviderVerification(Base, TimestampMixin):
    """A credential document submitted for review."""

    __tablename__ = "provider_verifications"

    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("service_providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    verification_type: Mapped[VerificationType] = mapped_column(
        status_enum(VerificationType, "verificationtype"),
        nullable=False,
    )

    # Document
    document_name: Mapped[str] = mapped_column(String(255), nullable=False)
    document_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    issuing_authority: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    document_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    extra_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    # Review
    status: Mapped[VerificationStatus] = mapped_column(
        status_enum(VerificationStatus, "verificationstatus"),
        default=VerificationStatus.PENDING,
        nullable=False,
        index=True,
    )
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ProviderVerification(id={self.id}, provider_id={self.provider_id}, "
            f"type='{self.verification_type.value}', status='{self.status.value}')>"
        )
