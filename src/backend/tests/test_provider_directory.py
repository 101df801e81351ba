"""Tests for the provider directory lookups."""

import uuid
from decimal import Decimal

import httpx
import pytest

from marketplace.core.config import Settings
from marketplace.core.exceptions import ProviderDirectoryException
from marketplace.services.provider_directory import (
    DatabaseProviderDirectory,
    HttpProviderDirectory,
    build_provider_directory,
)

PROVIDER_ID = uuid.UUID("6f1c9a62-0d0e-4b7a-9d55-0d1f6a1c2b3e")


def _directory(handler, **kwargs) -> HttpProviderDirectory:
    return HttpProviderDirectory(
        "https://directory.example.com/",
        transport=httpx.MockTransport(handler),
        backoff=0,
        **kwargs,
    )


def _profile_json(provider_id: uuid.UUID = PROVIDER_ID) -> dict:
    return {
        "id": str(provider_id),
        "company_name": "Alpha Plumbing",
        "rating": 4.2,
        "is_verified": True,
        "is_active": True,
    }


class TestHttpProviderDirectory:
    @pytest.mark.asyncio
    async def test_parses_profiles(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[_profile_json()])

        profiles = await _directory(handler).get_profiles([PROVIDER_ID])

        profile = profiles[PROVIDER_ID]
        assert profile.company_name == "Alpha Plumbing"
        assert profile.rating == Decimal("4.2")
        assert profile.is_verified
        assert seen[0].url.path == "/providers"
        assert seen[0].url.params["ids"] == str(PROVIDER_ID)

    @pytest.mark.asyncio
    async def test_missing_rating_stays_unrated(self):
        def handler(request: httpx.Request) -> httpx.Response:
            item = _profile_json()
            item["rating"] = None
            return httpx.Response(200, json=[item])

        profiles = await _directory(handler).get_profiles([PROVIDER_ID])
        assert profiles[PROVIDER_ID].rating is None

    @pytest.mark.asyncio
    async def test_sends_api_key(self):
        headers = []

        def handler(request: httpx.Request) -> httpx.Response:
            headers.append(request.headers.get("X-API-Key"))
            return httpx.Response(200, json=[])

        await _directory(handler, api_key="secret").get_profiles([PROVIDER_ID])
        assert headers == ["secret"]

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 2:
                return httpx.Response(503)
            return httpx.Response(200, json=[_profile_json()])

        profiles = await _directory(handler, retries=3).get_profiles([PROVIDER_ID])
        assert len(calls) == 2
        assert PROVIDER_ID in profiles

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(502)

        with pytest.raises(ProviderDirectoryException) as exc_info:
            await _directory(handler, retries=3).get_profiles([PROVIDER_ID])
        assert len(calls) == 3
        assert exc_info.value.status_code == 503
        assert exc_info.value.details["service"] == "ProviderDirectory"

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(401)

        with pytest.raises(ProviderDirectoryException):
            await _directory(handler, retries=3).get_profiles([PROVIDER_ID])
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_empty_lookup_makes_no_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("unexpected request")

        assert await _directory(handler).get_profiles([]) == {}


class TestDatabaseProviderDirectory:
    @pytest.mark.asyncio
    async def test_returns_known_providers(self, db, providers):
        directory = DatabaseProviderDirectory(db)
        unknown = uuid.uuid4()

        profiles = await directory.get_profiles([providers["a"].id, providers["inactive"].id, unknown])

        assert set(profiles) == {providers["a"].id, providers["inactive"].id}
        assert profiles[providers["a"].id].rating == Decimal("4.20")
        assert not profiles[providers["inactive"].id].is_active

    @pytest.mark.asyncio
    async def test_unrated_provider(self, db, providers):
        profiles = await DatabaseProviderDirectory(db).get_profiles([providers["c"].id])
        assert profiles[providers["c"].id].rating is None


class TestBuildProviderDirectory:
    def test_uses_local_table_by_default(self, db):
        directory = build_provider_directory(db, Settings(provider_directory_url=None))
        assert isinstance(directory, DatabaseProviderDirectory)

    def test_uses_remote_directory_when_configured(self, db):
        settings = Settings(
            provider_directory_url="https://directory.example.com",
            provider_directory_api_key="secret",
            provider_directory_retries=2,
        )
        directory = build_provider_directory(db, settings)
        assert isinstance(directory, HttpProviderDirectory)
        assert directory.api_key == "secret"
        assert directory.retries == 2
