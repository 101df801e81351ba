"""Accepting quotes from two sessions at once, against a file-backed SQLite database."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from marketplace.core.exceptions import InvalidStateException
from marketplace.db.base import Base
from marketplace.models import ProviderQuote, QuoteStatus, RequestForQuote, RfqStatus
from marketplace.services.rfq_service import RfqService
from tests.factories import NOW, add_provider, quote_payload, rfq_payload

LATER = NOW + timedelta(hours=2)


@pytest.fixture
async def file_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(file_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def committed_quotes(sessions):
    """A committed RFQ with quotes from two providers: (rfq_id, quote_a_id, quote_b_id)."""
    async with sessions() as session:
        a = await add_provider(session, "Alpha Plumbing", "4.20", verified=True)
        b = await add_provider(session, "Beta Heating", "4.80", verified=False)
        service = RfqService(session)
        rfq = await service.create_rfq(rfq_payload([a.id, b.id]))
        await service.send_rfq(rfq.id, NOW)
        quote_a = await service.submit_quote(quote_payload(rfq.id, a.id, "1500.00"), NOW + timedelta(hours=1))
        quote_b = await service.submit_quote(quote_payload(rfq.id, b.id, "1200.00"), NOW + timedelta(hours=1))
        await session.commit()
    return rfq.id, quote_a.id, quote_b.id


def _pause_before(service: RfqService, name: str, reached: asyncio.Event, resume: asyncio.Event) -> None:
    """Hold ``service.<name>`` until ``resume`` is set, signalling ``reached`` on entry."""
    original = getattr(service, name)

    async def paused(*args, **kwargs):
        reached.set()
        await resume.wait()
        return await original(*args, **kwargs)

    setattr(service, name, paused)


async def _quote_statuses(sessions, rfq_id) -> dict:
    async with sessions() as session:
        result = await session.execute(
            select(ProviderQuote.id, ProviderQuote.status).where(ProviderQuote.rfq_id == rfq_id)
        )
        return dict(result.all())


async def _rfq(sessions, rfq_id) -> RequestForQuote:
    async with sessions() as session:
        return await session.get(RequestForQuote, rfq_id)


class TestConcurrentAccept:
    @pytest.mark.asyncio
    async def test_losing_accept_raises_and_one_quote_wins(self, sessions, committed_quotes):
        rfq_id, quote_a, quote_b = committed_quotes
        reached, resume = asyncio.Event(), asyncio.Event()

        async with sessions() as first_session:
            first = RfqService(first_session)
            # Both pre-checks pass before the first request is held back
            _pause_before(first, "_swap_rfq_status", reached, resume)
            pending = asyncio.create_task(first.accept_quote(quote_a, LATER))
            await reached.wait()

            async with sessions() as second_session:
                await RfqService(second_session).accept_quote(quote_b, LATER)
                await second_session.commit()

            resume.set()
            with pytest.raises(InvalidStateException) as exc_info:
                await pending
            await first_session.rollback()

        assert exc_info.value.details["entity_type"] == "RFQ"
        assert exc_info.value.details["current_status"] == RfqStatus.AWARDED.value

        statuses = await _quote_statuses(sessions, rfq_id)
        assert list(statuses.values()).count(QuoteStatus.ACCEPTED) == 1
        assert statuses[quote_b] == QuoteStatus.ACCEPTED
        assert statuses[quote_a] == QuoteStatus.REJECTED

        rfq = await _rfq(sessions, rfq_id)
        assert rfq.awarded_quote_id == quote_b

    @pytest.mark.asyncio
    async def test_quote_closed_after_the_award_rolls_back(self, sessions, committed_quotes):
        rfq_id, quote_a, _ = committed_quotes

        async with sessions() as session:
            service = RfqService(session)
            original = service._swap_quote_status

            async def withdrawn_meanwhile(quote_id, expected, **values):
                # The provider withdraws between the RFQ award and the quote update
                await session.execute(
                    update(ProviderQuote)
                    .where(ProviderQuote.id == quote_id)
                    .values(status=QuoteStatus.WITHDRAWN)
                )
                return await original(quote_id, expected, **values)

            service._swap_quote_status = withdrawn_meanwhile

            with pytest.raises(InvalidStateException) as exc_info:
                await service.accept_quote(quote_a, LATER)
            await session.rollback()

        assert exc_info.value.details["entity_type"] == "Quote"
        assert exc_info.value.details["current_status"] == QuoteStatus.WITHDRAWN.value

        rfq = await _rfq(sessions, rfq_id)
        assert rfq.status == RfqStatus.QUOTES_RECEIVED
        assert rfq.awarded_quote_id is None
        statuses = await _quote_statuses(sessions, rfq_id)
        assert QuoteStatus.ACCEPTED not in statuses.values()
