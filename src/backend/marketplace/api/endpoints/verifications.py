"""
Provider verification endpoints.

Providers submit credential documents; a reviewer approves or rejects them.
An approved, unexpired document marks the provider as verified.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from marketplace.api.deps import Providers
from marketplace.models.provider import VerificationStatus
from marketplace.schemas.common import PaginatedResponse
from marketplace.schemas.provider import (
    VerificationCreate,
    VerificationResponse,
    VerificationReview,
)

router = APIRouter()


@router.post("", response_model=VerificationResponse, status_code=status.HTTP_201_CREATED)
async def submit_verification(providers: Providers, data: VerificationCreate) -> VerificationResponse:
    """Submit a credential document for review."""
    verification = await providers.submit_verification(data)
    return VerificationResponse.from_model(verification)


@router.get("", response_model=PaginatedResponse[VerificationResponse])
async def list_verifications(
    providers: Providers,
    provider_id: UUID | None = None,
    status: VerificationStatus | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> PaginatedResponse[VerificationResponse]:
    """List verifications, oldest first; filter by ``status=pending`` for the review queue."""
    verifications, total = await providers.list_verifications(
        provider_id=provider_id,
        status=status,
        page=page,
        page_size=page_size,
    )
    return PaginatedResponse.create(
        items=[VerificationResponse.from_model(v) for v in verifications],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{verification_id}", response_model=VerificationResponse)
async def get_verification(providers: Providers, verification_id: UUID) -> VerificationResponse:
    """Get a specific verification by ID."""
    return VerificationResponse.from_model(await providers.get_verification(verification_id))


@router.post("/{verification_id}/review", response_model=VerificationResponse)
async def review_verification(
    providers: Providers,
    verification_id: UUID,
    data: VerificationReview,
) -> VerificationResponse:
    """Approve or reject a verification; the provider's verified flag follows."""
    verification = await providers.review_verification(verification_id, data)
    return VerificationResponse.from_model(verification)
