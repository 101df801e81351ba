"""
Dashboard endpoints.

Provides aggregated RFQ and quote figures for the manager dashboard.
"""

from datetime import datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import BaseModel
from sqlalchemy import func, select

from marketplace.api.deps import DB
from marketplace.models.provider import ServiceProvider
from marketplace.models.quote import ProviderQuote
from marketplace.models.rfq import RequestForQuote
from marketplace.schemas.common import DeadlineInfo
from marketplace.services.deadlines import URGENT_WINDOW_DAYS, classify_deadline, utcnow
from marketplace.services.lifecycle import RFQ_OPEN_FOR_QUOTES

router = APIRouter()


class UpcomingDeadline(BaseModel):
    """Open RFQ whose quote deadline is close."""

    rfq_id: UUID
    title: str
    quote_deadline: datetime
    deadline: DeadlineInfo
    quote_count: int


class DashboardSummary(BaseModel):
    """Dashboard summary response."""

    # RFQ counts
    total_rfqs: int
    open_rfqs: int
    rfqs_by_status: dict[str, int]
    rfqs_by_category: dict[str, int]

    # Quote counts
    total_quotes: int
    quotes_by_status: dict[str, int]

    # Deadlines
    upcoming_deadlines: list[UpcomingDeadline]

    # Providers
    total_providers: int
    verified_providers: int


@router.get("/summary", response_model=DashboardSummary)
async def get_dashboard_summary(
    db: DB,
    building_id: UUID | None = Query(default=None, description="Limit to one building"),
) -> DashboardSummary:
    """
    Get aggregated dashboard figures.

    Upcoming deadlines lists open RFQs due within the urgency window,
    soonest first.
    """
    now = utcnow()
    rfq_filter = [RequestForQuote.building_id == building_id] if building_id else []
    quote_filter = (
        [ProviderQuote.rfq_id.in_(select(RequestForQuote.id).where(*rfq_filter))] if rfq_filter else []
    )

    # By status
    status_result = await db.execute(
        select(RequestForQuote.status, func.count(RequestForQuote.id))
        .where(*rfq_filter)
        .group_by(RequestForQuote.status)
    )
    rfqs_by_status = {row[0].value: row[1] for row in status_result.all()}

    # By category
    category_result = await db.execute(
        select(RequestForQuote.service_category, func.count(RequestForQuote.id))
        .where(*rfq_filter)
        .group_by(RequestForQuote.service_category)
    )
    rfqs_by_category = {row[0].value: row[1] for row in category_result.all()}

    # Quotes by status
    quote_result = await db.execute(
        select(ProviderQuote.status, func.count(ProviderQuote.id))
        .where(*quote_filter)
        .group_by(ProviderQuote.status)
    )
    quotes_by_status = {row[0].value: row[1] for row in quote_result.all()}

    # Deadlines within the urgency window, counted in whole days
    window_end = now + timedelta(days=URGENT_WINDOW_DAYS)
    quote_count = (
        select(func.count(ProviderQuote.id))
        .where(ProviderQuote.rfq_id == RequestForQuote.id)
        .scalar_subquery()
    )
    deadline_result = await db.execute(
        select(RequestForQuote, quote_count)
        .where(
            *rfq_filter,
            RequestForQuote.status.in_(RFQ_OPEN_FOR_QUOTES),
            RequestForQuote.quote_deadline >= now,
            RequestForQuote.quote_deadline <= window_end,
        )
        .order_by(RequestForQuote.quote_deadline)
    )
    upcoming = [
        UpcomingDeadline(
            rfq_id=rfq.id,
            title=rfq.title,
            quote_deadline=rfq.quote_deadline,
            deadline=DeadlineInfo.from_status(classify_deadline(rfq.quote_deadline, now)),
            quote_count=count,
        )
        for rfq, count in deadline_result.all()
    ]

    # Provider counts
    total_providers = await db.scalar(
        select(func.count(ServiceProvider.id)).where(ServiceProvider.is_active.is_(True))
    ) or 0
    verified_providers = await db.scalar(
        select(func.count(ServiceProvider.id)).where(
            ServiceProvider.is_active.is_(True),
            ServiceProvider.is_verified.is_(True),
        )
    ) or 0

    return DashboardSummary(
        total_rfqs=sum(rfqs_by_status.values()),
        open_rfqs=sum(rfqs_by_status.get(s.value, 0) for s in RFQ_OPEN_FOR_QUOTES),
        rfqs_by_status=rfqs_by_status,
        rfqs_by_category=rfqs_by_category,
        total_quotes=sum(quotes_by_status.values()),
        quotes_by_status=quotes_by_status,
        upcoming_deadlines=upcoming,
        total_providers=total_providers,
        verified_providers=verified_providers,
    )
