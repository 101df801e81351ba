"""
Pydantic schemas for API request/response validation.
"""

from marketplace.schemas.common import (
    BaseSchema,
    DeadlineInfo,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    PaginatedResponse,
    SuccessResponse,
)
from marketplace.schemas.provider import (
    ProviderCreate,
    ProviderResponse,
    ProviderUpdate,
    RatingBreakdown,
    RatingDistribution,
    ReviewCreate,
    ReviewResponse,
    VerificationCreate,
    VerificationResponse,
    VerificationReview,
)
from marketplace.schemas.quote import (
    AwardResponse,
    ComparisonRowResponse,
    PriceStatisticsResponse,
    QuoteDecision,
    QuoteComparisonResponse,
    QuoteCreate,
    QuoteResponse,
    QuoteUpdate,
    SweepRequest,
    SweepResponse,
)
from marketplace.schemas.rfq import (
    AwardRequest,
    InvitationDecline,
    InvitationResponse,
    ProviderInvitationResponse,
    RfqCreate,
    RfqListItem,
    RfqResponse,
    RfqUpdate,
)

__all__ = [
    # Common
    "BaseSchema",
    "DeadlineInfo",
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "PaginatedResponse",
    "SuccessResponse",
    # Provider
    "ProviderCreate",
    "ProviderResponse",
    "ProviderUpdate",
    "RatingBreakdown",
    "RatingDistribution",
    "ReviewCreate",
    "ReviewResponse",
    "VerificationCreate",
    "VerificationResponse",
    "VerificationReview",
    # RFQ
    "AwardRequest",
    "InvitationDecline",
    "InvitationResponse",
    "ProviderInvitationResponse",
    "RfqCreate",
    "RfqListItem",
    "RfqResponse",
    "RfqUpdate",
    # Quote
    "AwardResponse",
    "ComparisonRowResponse",
    "PriceStatisticsResponse",
    "QuoteDecision",
    "QuoteComparisonResponse",
    "QuoteCreate",
    "QuoteResponse",
    "QuoteUpdate",
    "SweepRequest",
    "SweepResponse",
]
