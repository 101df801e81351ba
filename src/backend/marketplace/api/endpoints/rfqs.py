"""
RFQ endpoints.

Managers create RFQs as drafts, invite providers, send them out, compare the
quotes that come back and award one of them.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from marketplace.api.deps import Service
from marketplace.core.logging import get_logger
from marketplace.models.quote import QuoteStatus
from marketplace.models.rfq import RfqStatus, ServiceCategory
from marketplace.schemas.common import PaginatedResponse, SuccessResponse
from marketplace.schemas.quote import AwardResponse, QuoteComparisonResponse, QuoteResponse
from marketplace.schemas.rfq import (
    AwardRequest,
    RfqCreate,
    RfqListItem,
    RfqResponse,
    RfqUpdate,
)
from marketplace.services.deadlines import utcnow

logger = get_logger(__name__)
router = APIRouter()


@router.get("", response_model=PaginatedResponse[RfqListItem])
async def list_rfqs(
    service: Service,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    status: RfqStatus | None = None,
    service_category: ServiceCategory | None = None,
    building_id: UUID | None = None,
    provider_id: UUID | None = None,
    is_urgent: bool | None = None,
) -> PaginatedResponse[RfqListItem]:
    """
    List RFQs with optional filtering.

    ``provider_id`` narrows the list to RFQs that invited that provider.
    """
    rfqs, total = await service.list_rfqs(
        page=page,
        page_size=page_size,
        status=status,
        service_category=service_category,
        building_id=building_id,
        provider_id=provider_id,
        is_urgent=is_urgent,
    )
    now = utcnow()
    return PaginatedResponse.create(
        items=[RfqListItem.from_model(r, now) for r in rfqs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("", response_model=RfqResponse, status_code=status.HTTP_201_CREATED)
async def create_rfq(
    service: Service,
    data: RfqCreate,
    created_by: UUID | None = Query(default=None, description="Manager creating the RFQ"),
) -> RfqResponse:
    """Create a new RFQ as a draft."""
    rfq = await service.create_rfq(data, created_by=created_by)
    return RfqResponse.from_model(rfq, utcnow())


@router.get("/{rfq_id}", response_model=RfqResponse)
async def get_rfq(service: Service, rfq_id: UUID) -> RfqResponse:
    """Get a specific RFQ with its invitations and deadline urgency."""
    rfq = await service.get_rfq(rfq_id)
    return RfqResponse.from_model(rfq, utcnow())


@router.patch("/{rfq_id}", response_model=RfqResponse)
async def update_rfq(service: Service, rfq_id: UUID, data: RfqUpdate) -> RfqResponse:
    """
    Update a draft RFQ.

    Setting ``status`` to ``sent`` or ``cancelled`` performs that transition;
    any other status change is refused.
    """
    rfq = await service.update_rfq(rfq_id, data)
    return RfqResponse.from_model(rfq, utcnow())


@router.delete("/{rfq_id}", response_model=SuccessResponse)
async def delete_rfq(service: Service, rfq_id: UUID) -> SuccessResponse:
    """Delete a draft RFQ."""
    await service.delete_rfq(rfq_id)
    return SuccessResponse(message=f"RFQ '{rfq_id}' deleted successfully")


@router.post("/{rfq_id}/send", response_model=RfqResponse)
async def send_rfq(service: Service, rfq_id: UUID) -> RfqResponse:
    """Send a draft RFQ to its invited providers."""
    rfq = await service.send_rfq(rfq_id)
    return RfqResponse.from_model(rfq, utcnow())


@router.post("/{rfq_id}/cancel", response_model=RfqResponse)
async def cancel_rfq(service: Service, rfq_id: UUID) -> RfqResponse:
    """Cancel a draft or sent RFQ."""
    rfq = await service.cancel_rfq(rfq_id)
    return RfqResponse.from_model(rfq, utcnow())


@router.get("/{rfq_id}/quotes", response_model=list[QuoteResponse])
async def list_rfq_quotes(
    service: Service,
    rfq_id: UUID,
    status: QuoteStatus | None = None,
) -> list[QuoteResponse]:
    """List every quote submitted against an RFQ."""
    quotes = await service.list_rfq_quotes(rfq_id, status=status)
    now = utcnow()
    return [QuoteResponse.from_model(q, now) for q in quotes]


@router.get("/{rfq_id}/compare", response_model=QuoteComparisonResponse)
async def compare_rfq_quotes(
    service: Service,
    rfq_id: UUID,
    quote_ids: list[UUID] | None = Query(default=None, description="Compare only these quotes"),
) -> QuoteComparisonResponse:
    """
    Compare quotes side by side.

    Flags the best price, rating and warranty (ties are all flagged) and
    returns lowest, highest and average price.
    """
    rfq, result = await service.compare_rfq_quotes(rfq_id, quote_ids)
    return QuoteComparisonResponse.build(RfqListItem.from_model(rfq, utcnow()), result)


@router.post("/{rfq_id}/award", response_model=AwardResponse)
async def award_rfq(service: Service, rfq_id: UUID, data: AwardRequest) -> AwardResponse:
    """Accept one quote of this RFQ; its other open quotes are rejected."""
    rfq, quotes = await service.accept_quote(data.quote_id, rfq_id=rfq_id)
    now = utcnow()
    return AwardResponse(
        rfq=RfqResponse.from_model(rfq, now),
        quotes=[QuoteResponse.from_model(q, now) for q in quotes],
    )
