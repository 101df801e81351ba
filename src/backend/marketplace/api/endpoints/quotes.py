"""
Quote endpoints.

Providers submit, edit and withdraw quotes; managers accept or reject them.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from marketplace.api.deps import Service
from marketplace.core.logging import get_logger
from marketplace.models.quote import QuoteStatus
from marketplace.schemas.common import PaginatedResponse
from marketplace.schemas.quote import (
    AwardResponse,
    QuoteCreate,
    QuoteDecision,
    QuoteResponse,
    QuoteUpdate,
)
from marketplace.schemas.rfq import RfqResponse
from marketplace.services.deadlines import utcnow

logger = get_logger(__name__)
router = APIRouter()


@router.get("", response_model=PaginatedResponse[QuoteResponse])
async def list_quotes(
    service: Service,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    provider_id: UUID | None = None,
    rfq_id: UUID | None = None,
    status: QuoteStatus | None = None,
) -> PaginatedResponse[QuoteResponse]:
    """List quotes, e.g. all quotes of one provider."""
    quotes, total = await service.list_quotes(
        page=page,
        page_size=page_size,
        provider_id=provider_id,
        rfq_id=rfq_id,
        status=status,
    )
    now = utcnow()
    return PaginatedResponse.create(
        items=[QuoteResponse.from_model(q, now) for q in quotes],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED)
async def submit_quote(service: Service, data: QuoteCreate) -> QuoteResponse:
    """
    Submit a quote against an open RFQ.

    The provider must be invited, must not have declined and must not
    already hold an active quote on the RFQ.
    """
    quote = await service.submit_quote(data)
    return QuoteResponse.from_model(quote, utcnow())


@router.get("/{quote_id}", response_model=QuoteResponse)
async def get_quote(service: Service, quote_id: UUID) -> QuoteResponse:
    """Get a specific quote."""
    quote = await service.get_quote(quote_id)
    return QuoteResponse.from_model(quote, utcnow())


@router.patch("/{quote_id}", response_model=QuoteResponse)
async def update_quote(service: Service, quote_id: UUID, data: QuoteUpdate) -> QuoteResponse:
    """Edit price or terms of an open quote."""
    quote = await service.update_quote(quote_id, data)
    return QuoteResponse.from_model(quote, utcnow())


@router.post("/{quote_id}/accept", response_model=AwardResponse)
async def accept_quote(service: Service, quote_id: UUID) -> AwardResponse:
    """Accept a quote, awarding its RFQ and rejecting the other open quotes."""
    rfq, quotes = await service.accept_quote(quote_id)
    now = utcnow()
    return AwardResponse(
        rfq=RfqResponse.from_model(rfq, now),
        quotes=[QuoteResponse.from_model(q, now) for q in quotes],
    )


@router.post("/{quote_id}/reject", response_model=QuoteResponse)
async def reject_quote(
    service: Service,
    quote_id: UUID,
    data: QuoteDecision | None = None,
) -> QuoteResponse:
    """Reject a single quote."""
    quote = await service.reject_quote(quote_id, reason=data.reason if data else None)
    return QuoteResponse.from_model(quote, utcnow())


@router.post("/{quote_id}/withdraw", response_model=QuoteResponse)
async def withdraw_quote(
    service: Service,
    quote_id: UUID,
    data: QuoteDecision | None = None,
) -> QuoteResponse:
    """Withdraw a quote on behalf of the provider that submitted it."""
    quote = await service.withdraw_quote(
        quote_id,
        provider_id=data.provider_id if data else None,
        reason=data.reason if data else None,
    )
    return QuoteResponse.from_model(quote, utcnow())
