"""
Service provider directory endpoints.

Provides CRUD operations for the local provider directory used when no
remote directory is configured, plus the reviews that drive provider ratings.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status
from sqlalchemy import func, select

from marketplace.api.deps import DB, Providers
from marketplace.core.exceptions import DuplicateEntityException, EntityNotFoundException
from marketplace.core.logging import get_logger
from marketplace.models.provider import ServiceProvider
from marketplace.schemas.common import PaginatedResponse, SuccessResponse
from marketplace.schemas.provider import (
    ProviderCreate,
    ProviderResponse,
    ProviderUpdate,
    RatingBreakdown,
    ReviewCreate,
    ReviewResponse,
)

logger = get_logger(__name__)
router = APIRouter()


async def _get_provider(db: DB, provider_id: UUID) -> ServiceProvider:
    result = await db.execute(
        select(ServiceProvider).where(ServiceProvider.id == provider_id)
    )
    provider = result.scalar_one_or_none()

    if not provider:
        raise EntityNotFoundException("ServiceProvider", str(provider_id))

    return provider


@router.get("", response_model=PaginatedResponse[ProviderResponse])
async def list_providers(
    db: DB,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    is_verified: bool | None = None,
    is_active: bool | None = None,
    search: str | None = Query(default=None, description="Company name contains"),
) -> PaginatedResponse[ProviderResponse]:
    """List providers, best rated first."""
    query = select(ServiceProvider)
    count_query = select(func.count(ServiceProvider.id))

    if is_verified is not None:
        query = query.where(ServiceProvider.is_verified == is_verified)
        count_query = count_query.where(ServiceProvider.is_verified == is_verified)
    if is_active is not None:
        query = query.where(ServiceProvider.is_active == is_active)
        count_query = count_query.where(ServiceProvider.is_active == is_active)
    if search:
        pattern = f"%{search}%"
        query = query.where(ServiceProvider.company_name.ilike(pattern))
        count_query = count_query.where(ServiceProvider.company_name.ilike(pattern))

    total = await db.scalar(count_query) or 0

    offset = (page - 1) * page_size
    query = query.order_by(
        ServiceProvider.rating.desc().nulls_last(),
        ServiceProvider.company_name,
    )
    query = query.offset(offset).limit(page_size)

    result = await db.execute(query)
    providers = result.scalars().all()

    return PaginatedResponse.create(
        items=[ProviderResponse.model_validate(p) for p in providers],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{provider_id}", response_model=ProviderResponse)
async def get_provider(db: DB, provider_id: UUID) -> ProviderResponse:
    """Get a specific provider by ID."""
    return ProviderResponse.model_validate(await _get_provider(db, provider_id))


@router.post("", response_model=ProviderResponse, status_code=status.HTTP_201_CREATED)
async def create_provider(db: DB, data: ProviderCreate) -> ProviderResponse:
    """Register a provider in the local directory."""
    existing = await db.execute(
        select(ServiceProvider.id).where(ServiceProvider.company_name == data.company_name)
    )
    if existing.scalar_one_or_none():
        raise DuplicateEntityException("ServiceProvider", "company_name", data.company_name)

    provider = ServiceProvider(**data.model_dump())
    db.add(provider)
    await db.flush()
    await db.refresh(provider)

    logger.info("Provider created", provider_id=str(provider.id), company_name=provider.company_name)

    return ProviderResponse.model_validate(provider)


@router.patch("/{provider_id}", response_model=ProviderResponse)
async def update_provider(db: DB, provider_id: UUID, data: ProviderUpdate) -> ProviderResponse:
    """Update an existing provider."""
    provider = await _get_provider(db, provider_id)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(provider, field, value)

    await db.flush()
    await db.refresh(provider)

    logger.info("Provider updated", provider_id=str(provider_id))

    return ProviderResponse.model_validate(provider)


@router.delete("/{provider_id}", response_model=SuccessResponse)
async def delete_provider(db: DB, provider_id: UUID) -> SuccessResponse:
    """
    Deactivate a provider.

    Providers are never removed because invitations and quotes keep their id.
    """
    provider = await _get_provider(db, provider_id)
    provider.is_active = False
    await db.flush()

    logger.info("Provider deactivated", provider_id=str(provider_id))

    return SuccessResponse(message=f"Provider '{provider.company_name}' deactivated successfully")


# =============================================================================
# Reviews
# =============================================================================


@router.post(
    "/{provider_id}/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_review(providers: Providers, provider_id: UUID, data: ReviewCreate) -> ReviewResponse:
    """Review a provider; its rating and review count are recomputed."""
    review = await providers.add_review(provider_id, data)
    return ReviewResponse.model_validate(review)


@router.get("/{provider_id}/reviews", response_model=PaginatedResponse[ReviewResponse])
async def list_reviews(
    providers: Providers,
    provider_id: UUID,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> PaginatedResponse[ReviewResponse]:
    """List a provider's reviews, newest first."""
    reviews, total = await providers.list_reviews(provider_id, page=page, page_size=page_size)
    return PaginatedResponse.create(
        items=[ReviewResponse.model_validate(r) for r in reviews],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{provider_id}/ratings", response_model=RatingBreakdown)
async def get_rating_breakdown(providers: Providers, provider_id: UUID) -> RatingBreakdown:
    """Per-dimension averages and star distribution of a provider's reviews."""
    return await providers.rating_breakdown(provider_id)
