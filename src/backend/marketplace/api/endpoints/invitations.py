"""
Provider-side invitation endpoints.
"""

from uuid import UUID

from fastapi import APIRouter

from marketplace.api.deps import Service
from marketplace.schemas.rfq import InvitationDecline, ProviderInvitationResponse
from marketplace.services.deadlines import utcnow

router = APIRouter()


@router.get("", response_model=list[ProviderInvitationResponse])
async def list_provider_invitations(
    service: Service,
    provider_id: UUID,
    open_only: bool = False,
) -> list[ProviderInvitationResponse]:
    """
    List the RFQs a provider was invited to.

    With ``open_only`` only RFQs still taking quotes and not declined are returned.
    """
    invitations = await service.list_provider_invitations(provider_id, open_only=open_only)
    now = utcnow()
    return [ProviderInvitationResponse.from_model(i, now) for i in invitations]


@router.post("/{invitation_id}/view", response_model=ProviderInvitationResponse)
async def view_invitation(service: Service, invitation_id: UUID) -> ProviderInvitationResponse:
    """Record that the provider opened the invitation."""
    invitation = await service.view_invitation(invitation_id)
    return ProviderInvitationResponse.from_model(invitation, utcnow())


@router.post("/{invitation_id}/decline", response_model=ProviderInvitationResponse)
async def decline_invitation(
    service: Service,
    invitation_id: UUID,
    data: InvitationDecline,
) -> ProviderInvitationResponse:
    """Decline to quote on an RFQ."""
    invitation = await service.decline_invitation(invitation_id, reason=data.reason)
    return ProviderInvitationResponse.from_model(invitation, utcnow())
