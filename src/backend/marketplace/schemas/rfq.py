"""
Schemas for RFQ API.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StringConstraints
from sqlalchemy import inspect

from marketplace.models.rfq import ContactPreference, RequestForQuote, RfqInvitation, RfqStatus, ServiceCategory
from marketplace.schemas.common import DeadlineInfo
from marketplace.services.deadlines import as_utc, classify_deadline

# Shared field types
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]
Currency = Annotated[str, StringConstraints(pattern=r"^[A-Za-z]{3}$", to_upper=True)]
Money = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]


class RfqBase(BaseModel):
    """Fields a manager fills in on the RFQ form."""

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    service_category: ServiceCategory = ServiceCategory.GENERAL_MAINTENANCE
    scope_of_work: str | None = None
    building_id: UUID | None = None
    preferred_start_date: date | None = None
    preferred_end_date: date | None = None
    is_urgent: bool = False
    budget_min: Money | None = None
    budget_max: Money | None = None
    quote_deadline: UtcDatetime | None = None
    contact_preference: ContactPreference = ContactPreference.ANY
    site_visit_required: bool = False
    metadata: dict[str, Any] | None = None


class RfqCreate(RfqBase):
    """Schema for creating a new RFQ (always starts as draft)."""

    currency: Currency | None = Field(default=None, description="Defaults to the configured currency")
    provider_ids: list[UUID] = Field(default_factory=list, description="Providers to invite")


class RfqUpdate(BaseModel):
    """
    Schema for updating an RFQ (partial update).

    Content fields and ``provider_ids`` are only accepted while the RFQ is a
    draft. ``status`` requests a manager transition (``sent`` or ``cancelled``).
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    service_category: ServiceCategory | None = None
    scope_of_work: str | None = None
    building_id: UUID | None = None
    preferred_start_date: date | None = None
    preferred_end_date: date | None = None
    is_urgent: bool | None = None
    budget_min: Money | None = None
    budget_max: Money | None = None
    currency: Currency | None = None
    quote_deadline: UtcDatetime | None = None
    contact_preference: ContactPreference | None = None
    site_visit_required: bool | None = None
    metadata: dict[str, Any] | None = None
    provider_ids: list[UUID] | None = None
    status: RfqStatus | None = None


class InvitationResponse(BaseModel):
    """Schema for an RFQ invitation."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    rfq_id: UUID
    provider_id: UUID
    invited_at: datetime | None
    viewed_at: datetime | None
    responded_at: datetime | None
    declined: bool
    decline_reason: str | None


class InvitationDecline(BaseModel):
    """Provider declining to quote."""

    reason: str | None = Field(default=None, max_length=2000)


class RfqListItem(BaseModel):
    """Lightweight schema for RFQ list view."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    service_category: ServiceCategory
    status: RfqStatus
    is_urgent: bool
    budget_min: Decimal | None
    budget_max: Decimal | None
    currency: str
    quote_deadline: datetime | None
    deadline: DeadlineInfo
    invited_provider_ids: list[UUID]
    created_at: datetime

    @classmethod
    def from_model(cls, rfq: RequestForQuote, now: datetime) -> "RfqListItem":
        return cls.model_validate(
            {
                **_columns(rfq, cls),
                "deadline": DeadlineInfo.from_status(classify_deadline(rfq.quote_deadline, now)),
                "invited_provider_ids": rfq.invited_provider_ids,
            }
        )


class RfqResponse(RfqListItem):
    """Schema for RFQ API response."""

    description: str
    scope_of_work: str | None
    building_id: UUID | None
    created_by: UUID | None
    preferred_start_date: date | None
    preferred_end_date: date | None
    contact_preference: ContactPreference
    site_visit_required: bool
    metadata: dict[str, Any] | None = None
    sent_at: datetime | None
    awarded_quote_id: UUID | None
    awarded_to: UUID | None
    awarded_at: datetime | None
    cancelled_at: datetime | None
    expired_at: datetime | None
    updated_at: datetime
    invitations: list[InvitationResponse] = Field(default_factory=list)

    @classmethod
    def from_model(cls, rfq: RequestForQuote, now: datetime) -> "RfqResponse":
        return cls.model_validate(
            {
                **_columns(rfq, cls),
                "metadata": rfq.extra_metadata,
                "deadline": DeadlineInfo.from_status(classify_deadline(rfq.quote_deadline, now)),
                "invited_provider_ids": rfq.invited_provider_ids,
                "invitations": [InvitationResponse.model_validate(i) for i in rfq.invitations],
            }
        )


def _columns(rfq: RequestForQuote, schema: type[BaseModel]) -> dict[str, Any]:
    """Plain column values of ``rfq`` for the fields ``schema`` declares."""
    names = set(schema.model_fields) & set(inspect(RequestForQuote).column_attrs.keys())
    return {name: getattr(rfq, name) for name in names}


class ProviderInvitationResponse(InvitationResponse):
    """An invitation as the provider sees it, with the RFQ summary."""

    rfq: RfqListItem

    @classmethod
    def from_model(cls, invitation: RfqInvitation, now: datetime) -> "ProviderInvitationResponse":
        base = InvitationResponse.model_validate(invitation).model_dump()
        return cls(**base, rfq=RfqListItem.from_model(invitation.rfq, now))


class AwardRequest(BaseModel):
    """Manager's choice of winning quote."""

    quote_id: UUID
