"""
Maintenance endpoints for external schedulers.
"""

from fastapi import APIRouter

from marketplace.api.deps import AppSettings, Service
from marketplace.core.exceptions import ValidationException
from marketplace.core.logging import get_logger
from marketplace.schemas.quote import SweepRequest, SweepResponse

logger = get_logger(__name__)
router = APIRouter()


@router.post("/sweep-expirations", response_model=SweepResponse)
async def sweep_expirations(
    service: Service,
    settings: AppSettings,
    data: SweepRequest | None = None,
) -> SweepResponse:
    """
    Expire RFQs past their quote deadline and quotes past their validity.

    Safe to call repeatedly; a second run with the same ``now`` changes nothing.
    A client-supplied ``now`` is only honoured in debug mode, otherwise the
    sweep always runs against the server clock.
    """
    now = data.now if data else None
    if now is not None and not settings.debug:
        raise ValidationException(
            "A reference time can only be supplied in debug mode",
            field_errors={"now": ["only accepted when debug is enabled"]},
        )

    result = await service.sweep_expirations(now)
    logger.info("Expiration sweep requested", expired=result.total)
    return SweepResponse(
        swept_at=result.swept_at,
        expired_rfq_ids=result.expired_rfq_ids,
        expired_quote_ids=result.expired_quote_ids,
    )
