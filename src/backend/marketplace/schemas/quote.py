"""
Schemas for quote API and quote comparison.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models.quote import ProviderQuote, QuoteStatus
from marketplace.schemas.common import DeadlineInfo
from marketplace.schemas.rfq import Currency, Money, RfqListItem, RfqResponse, UtcDatetime
from marketplace.services.comparison import ComparisonResult, ComparisonRow
from marketplace.services.deadlines import classify_deadline


class QuoteTerms(BaseModel):
    """Offer details a provider can set on submission and edit afterwards."""

    price_breakdown: dict[str, Any] | None = None
    estimated_start_date: date | None = None
    estimated_end_date: date | None = None
    estimated_duration_days: int | None = Field(default=None, ge=0)
    terms_and_conditions: str | None = None
    warranty_period_days: int | None = Field(default=None, ge=0)
    payment_terms: str | None = None
    notes: str | None = None
    valid_until: UtcDatetime | None = None


class QuoteCreate(QuoteTerms):
    """Schema for submitting a quote against an RFQ."""

    rfq_id: UUID
    provider_id: UUID
    price: Money
    currency: Currency | None = Field(default=None, description="Defaults to the RFQ currency")


class QuoteUpdate(QuoteTerms):
    """Schema for editing an open quote (partial update)."""

    model_config = ConfigDict(extra="forbid")

    price: Money | None = None
    currency: Currency | None = None


class QuoteResponse(BaseModel):
    """Schema for quote API response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    rfq_id: UUID
    provider_id: UUID
    price: Decimal
    currency: str
    price_breakdown: dict[str, Any] | None
    estimated_start_date: date | None
    estimated_end_date: date | None
    estimated_duration_days: int | None
    terms_and_conditions: str | None
    warranty_period_days: int | None
    payment_terms: str | None
    notes: str | None
    status: QuoteStatus
    valid_until: datetime | None
    validity: DeadlineInfo
    submitted_at: datetime | None
    status_changed_at: datetime | None
    status_reason: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, quote: ProviderQuote, now: datetime) -> "QuoteResponse":
        data = {name: getattr(quote, name) for name in cls.model_fields if name != "validity"}
        data["validity"] = DeadlineInfo.from_status(classify_deadline(quote.valid_until, now))
        return cls.model_validate(data)


class QuoteDecision(BaseModel):
    """Manager rejection or provider withdrawal of a quote."""

    provider_id: UUID | None = Field(default=None, description="Acting provider, checked on withdrawal")
    reason: str | None = Field(default=None, max_length=2000)


class AwardResponse(BaseModel):
    """RFQ after an award, with every quote in its new status."""

    rfq: RfqResponse
    quotes: list[QuoteResponse]


class ComparisonRowResponse(BaseModel):
    """One column of the comparison table."""

    quote_id: UUID
    provider_id: UUID
    provider_name: str | None
    provider_rating: Decimal | None
    is_rated: bool
    price: Decimal
    currency: str
    status: str
    warranty_period_days: int | None
    estimated_start_date: date | None
    estimated_end_date: date | None
    estimated_duration_days: int | None
    valid_until: datetime | None
    is_best_price: bool
    is_best_rating: bool
    is_best_warranty: bool
    is_verified: bool
    best_criteria: list[str]

    @classmethod
    def from_row(cls, row: ComparisonRow) -> "ComparisonRowResponse":
        q = row.quote
        return cls(
            quote_id=q.quote_id,
            provider_id=q.provider_id,
            provider_name=q.provider_name,
            provider_rating=q.provider_rating,
            is_rated=row.is_rated,
            price=q.price,
            currency=q.currency,
            status=q.status,
            warranty_period_days=q.warranty_period_days,
            estimated_start_date=q.estimated_start_date,
            estimated_end_date=q.estimated_end_date,
            estimated_duration_days=q.estimated_duration_days,
            valid_until=q.valid_until,
            is_best_price=row.is_best_price,
            is_best_rating=row.is_best_rating,
            is_best_warranty=row.is_best_warranty,
            is_verified=row.is_verified,
            best_criteria=row.best_criteria,
        )


class PriceStatisticsResponse(BaseModel):
    """Price summary; amounts are null when no quotes were compared."""

    count: int
    currency: str | None
    is_defined: bool
    lowest: Decimal | None
    highest: Decimal | None
    average: Decimal | None


class QuoteComparisonResponse(BaseModel):
    """Side-by-side comparison of an RFQ's quotes."""

    rfq: RfqListItem
    quotes: list[ComparisonRowResponse]
    statistics: PriceStatisticsResponse

    @classmethod
    def build(cls, rfq: RfqListItem, result: ComparisonResult) -> "QuoteComparisonResponse":
        stats = result.statistics
        return cls(
            rfq=rfq,
            quotes=[ComparisonRowResponse.from_row(row) for row in result.rows],
            statistics=PriceStatisticsResponse(
                count=stats.count,
                currency=stats.currency,
                is_defined=stats.is_defined,
                lowest=stats.lowest,
                highest=stats.highest,
                average=stats.average,
            ),
        )


class SweepRequest(BaseModel):
    """Reference instant for an expiry sweep; honoured in debug mode only."""

    now: UtcDatetime | None = None


class SweepResponse(BaseModel):
    """Entities moved to ``expired`` by one sweep."""

    swept_at: datetime
    expired_rfq_ids: list[UUID]
    expired_quote_ids: list[UUID]
