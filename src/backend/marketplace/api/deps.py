"""
Shared FastAPI dependencies.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import Settings, get_settings
from marketplace.db.session import get_db
from marketplace.services.provider_service import ProviderService
from marketplace.services.rfq_service import RfqService

# Type alias for database dependency
DB = Annotated[AsyncSession, Depends(get_db)]

AppSettings = Annotated[Settings, Depends(get_settings)]


def get_rfq_service(db: DB) -> RfqService:
    """RFQ workflow service bound to the request session."""
    return RfqService(db)


Service = Annotated[RfqService, Depends(get_rfq_service)]


def get_provider_service(db: DB) -> ProviderService:
    """Provider reputation service bound to the request session."""
    return ProviderService(db)


Providers = Annotated[ProviderService, Depends(get_provider_service)]
