"""
SQLAlchemy ORM models for the service-provider marketplace.

Importing this package registers every table on ``Base.metadata``.
"""

from marketplace.models.provider import (
    ProviderReview,
    ProviderVerification,
    ServiceProvider,
    VerificationStatus,
    VerificationType,
)
from marketplace.models.quote import ProviderQuote, QuoteStatus
from marketplace.models.rfq import (
    ContactPreference,
    RequestForQuote,
    RfqInvitation,
    RfqStatus,
    ServiceCategory,
)

__all__ = [
    # Provider
    "ServiceProvider",
    "ProviderReview",
    "ProviderVerification",
    "VerificationStatus",
    "VerificationType",
    # RFQ
    "RequestForQuote",
    "RfqInvitation",
    "RfqStatus",
    "ServiceCategory",
    "ContactPreference",
    # Quote
    "ProviderQuote",
    "QuoteStatus",
]
