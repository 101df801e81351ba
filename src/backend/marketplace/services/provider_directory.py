"""
Provider directory lookups.

The RFQ workflow only needs a few facts about each provider (name, rating,
verification). They come from the local ``service_providers`` table, or from
a remote directory service when ``PROVIDER_DIRECTORY_URL`` is configured.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from marketplace.core.config import Settings, get_settings
from marketplace.core.exceptions import ProviderDirectoryException
from marketplace.core.logging import LoggerMixin
from marketplace.models.provider import ServiceProvider


@dataclass(frozen=True)
class ProviderProfile:
    """Directory facts about one provider."""

    provider_id: uuid.UUID
    company_name: str
    rating: Decimal | None = None
    is_verified: bool = False
    is_active: bool = True


class ProviderDirectory(Protocol):
    async def get_profiles(self, provider_ids: list[uuid.UUID]) -> dict[uuid.UUID, ProviderProfile]:
        """Return the profiles that exist, keyed by provider id."""
        ...


class DatabaseProviderDirectory:
    """Directory backed by the local service_providers table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_profiles(self, provider_ids: list[uuid.UUID]) -> dict[uuid.UUID, ProviderProfile]:
        if not provider_ids:
            return {}
        result = await self.db.execute(
            select(ServiceProvider).where(ServiceProvider.id.in_(set(provider_ids)))
        )
        return {
            provider.id: ProviderProfile(
                provider_id=provider.id,
                company_name=provider.company_name,
                rating=provider.rating,
                is_verified=provider.is_verified,
                is_active=provider.is_active,
            )
            for provider in result.scalars().all()
        }


class _RetryableResponse(Exception):
    """A 5xx answer worth another attempt."""


class HttpProviderDirectory(LoggerMixin):
    """
    Directory served by a remote HTTP API.

    Expects ``GET {base_url}/providers?ids=<id>,<id>`` to return a JSON list of
    objects with ``id``, ``company_name``, ``rating``, ``is_verified`` and
    ``is_active``. Transport errors and 5xx answers are retried with
    exponential backoff; anything else fails immediately.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        retries: int = 3,
        backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpProviderDirectory":
        return cls(
            base_url=settings.provider_directory_url or "",
            api_key=settings.provider_directory_api_key,
            timeout=settings.provider_directory_timeout,
            retries=settings.provider_directory_retries,
        )

    async def get_profiles(self, provider_ids: list[uuid.UUID]) -> dict[uuid.UUID, ProviderProfile]:
        if not provider_ids:
            return {}

        ids = sorted({str(pid) for pid in provider_ids})
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retries),
                wait=wait_exponential(multiplier=self.backoff, min=0, max=30),
                retry=retry_if_exception_type((httpx.TransportError, _RetryableResponse)),
                reraise=True,
            ):
                with attempt:
                    payload = await self._fetch(ids)
        except (httpx.HTTPError, _RetryableResponse) as e:
            self.logger.error("Provider directory lookup failed", error=str(e), provider_count=len(ids))
            raise ProviderDirectoryException(str(e)) from e

        profiles = {}
        for item in payload:
            profile = self._parse(item)
            profiles[profile.provider_id] = profile
        return profiles

    async def _fetch(self, ids: list[str]) -> list[dict[str, Any]]:
        headers = {"X-API-Key": self.api_key} if self.api_key else {}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(
                f"{self.base_url}/providers",
                params={"ids": ",".join(ids)},
                headers=headers,
            )
        if response.status_code >= 500:
            raise _RetryableResponse(f"HTTP {response.status_code}")
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _parse(item: dict[str, Any]) -> ProviderProfile:
        rating = item.get("rating")
        return ProviderProfile(
            provider_id=uuid.UUID(str(item["id"])),
            company_name=item.get("company_name") or "",
            rating=Decimal(str(rating)) if rating is not None else None,
            is_verified=bool(item.get("is_verified", False)),
            is_active=bool(item.get("is_active", True)),
        )


def build_provider_directory(db: AsyncSession, settings: Settings | None = None) -> ProviderDirectory:
    """Pick the remote directory when configured, the local table otherwise."""
    settings = settings or get_settings()
    if settings.provider_directory_url:
        return HttpProviderDirectory.from_settings(settings)
    return DatabaseProviderDirectory(db)
