"""
Schemas for the local provider directory, provider reviews and verifications.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from marketplace.models.provider import (
    ProviderVerification,
    VerificationStatus,
    VerificationType,
)


class ProviderBase(BaseModel):
    """Base schema for ServiceProvider."""

    company_name: str = Field(min_length=1, max_length=255)
    contact_email: str | None = Field(default=None, max_length=255)
    is_active: bool = True


class ProviderCreate(ProviderBase):
    """
    Schema for registering a provider.

    Rating and verification are earned through reviews and approved
    verifications, never set directly.
    """

    model_config = ConfigDict(extra="forbid")


class ProviderUpdate(BaseModel):
    """Schema for updating a provider (partial update)."""

    model_config = ConfigDict(extra="forbid")

    company_name: str | None = Field(default=None, min_length=1, max_length=255)
    contact_email: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None


class ProviderResponse(ProviderBase):
    """Schema for ServiceProvider API response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    rating: Decimal | None
    review_count: int
    is_verified: bool
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Reviews
# =============================================================================

Stars = Annotated[int, Field(ge=1, le=5)]


class ReviewCreate(BaseModel):
    """Schema for reviewing a provider."""

    rfq_id: UUID | None = Field(default=None, description="RFQ the provider was awarded")
    reviewer_id: UUID | None = None
    quality_rating: Stars
    timeliness_rating: Stars
    communication_rating: Stars
    value_rating: Stars
    review_title: str | None = Field(default=None, max_length=255)
    review_text: str | None = Field(default=None, max_length=5000)


class ReviewResponse(BaseModel):
    """Schema for ProviderReview API response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider_id: UUID
    rfq_id: UUID | None
    reviewer_id: UUID | None
    quality_rating: int
    timeliness_rating: int
    communication_rating: int
    value_rating: int
    overall_rating: int
    review_title: str | None
    review_text: str | None
    created_at: datetime
    updated_at: datetime


class RatingDistribution(BaseModel):
    """Review count per overall star rating."""

    five_star: int = 0
    four_star: int = 0
    three_star: int = 0
    two_star: int = 0
    one_star: int = 0


class RatingBreakdown(BaseModel):
    """Per-dimension averages over a provider's reviews; null when unreviewed."""

    provider_id: UUID
    total_reviews: int
    average_overall: Decimal | None
    average_quality: Decimal | None
    average_timeliness: Decimal | None
    average_communication: Decimal | None
    average_value: Decimal | None
    rating_distribution: RatingDistribution


# =============================================================================
# Verifications
# =============================================================================


class VerificationCreate(BaseModel):
    """Schema for submitting a credential document."""

    provider_id: UUID
    verification_type: VerificationType
    document_name: str = Field(min_length=1, max_length=255)
    document_number: str | None = Field(default=None, max_length=100)
    issuing_authority: str | None = Field(default=None, max_length=255)
    issue_date: date | None = None
    expiry_date: date | None = None
    document_url: str | None = Field(default=None, max_length=2048)
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def check_dates(self) -> "VerificationCreate":
        if self.issue_date and self.expiry_date and self.expiry_date < self.issue_date:
            raise ValueError("expiry_date must not be before issue_date")
        return self


class VerificationReview(BaseModel):
    """Reviewer decision on a verification."""

    status: VerificationStatus
    reviewed_by: UUID | None = None
    rejection_reason: str | None = Field(default=None, max_length=2000)
    notes: str | None = Field(default=None, max_length=5000)

    @model_validator(mode="after")
    def check_decision(self) -> "VerificationReview":
        if self.status == VerificationStatus.PENDING:
            raise ValueError("status must be under_review, verified or rejected")
        if self.status == VerificationStatus.REJECTED and not self.rejection_reason:
            raise ValueError("rejection_reason is required when rejecting")
        return self


class VerificationResponse(BaseModel):
    """Schema for ProviderVerification API response."""

    id: UUID
    provider_id: UUID
    verification_type: VerificationType
    document_name: str
    document_number: str | None
    issuing_authority: str | None
    issue_date: date | None
    expiry_date: date | None
    document_url: str | None
    metadata: dict[str, Any] | None
    status: VerificationStatus
    reviewed_by: UUID | None
    reviewed_at: datetime | None
    rejection_reason: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, verification: ProviderVerification) -> "VerificationResponse":
        data = {name: getattr(verification, name) for name in cls.model_fields if name != "metadata"}
        data["metadata"] = verification.extra_metadata
        return cls.model_validate(data)
