"""Tests for RfqService against an in-memory database."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from marketplace.core.exceptions import (
    DataIntegrityException,
    DuplicateEntityException,
    EntityNotFoundException,
    InvalidStateException,
    InvalidTransitionException,
    ValidationException,
)
from marketplace.models import ProviderQuote, QuoteStatus, RfqStatus
from marketplace.schemas.quote import QuoteUpdate
from marketplace.schemas.rfq import RfqUpdate
from tests.factories import NOW, quote_payload, rfq_payload

LATER = NOW + timedelta(hours=2)


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------


class TestCreateRfq:
    @pytest.mark.asyncio
    async def test_created_as_draft_with_invitations(self, service, providers):
        rfq = await service.create_rfq(rfq_payload([providers["a"].id, providers["b"].id]))

        assert rfq.status == RfqStatus.DRAFT
        assert set(rfq.invited_provider_ids) == {providers["a"].id, providers["b"].id}
        assert all(i.invited_at is None for i in rfq.invitations)
        assert rfq.created_at is not None

    @pytest.mark.asyncio
    async def test_duplicate_provider_ids_are_collapsed(self, service, providers):
        pid = providers["a"].id
        rfq = await service.create_rfq(rfq_payload([pid, pid]))
        assert rfq.invited_provider_ids == [pid]

    @pytest.mark.asyncio
    async def test_currency_defaults_to_settings(self, service, providers):
        rfq = await service.create_rfq(rfq_payload(currency=None))
        assert rfq.currency == service.settings.default_currency

    @pytest.mark.asyncio
    async def test_budget_min_above_max_is_rejected(self, service, providers):
        with pytest.raises(ValidationException) as exc_info:
            await service.create_rfq(
                rfq_payload(budget_min=Decimal("3000.00"), budget_max=Decimal("1000.00"))
            )
        assert "budget_max" in exc_info.value.details["field_errors"]

    @pytest.mark.asyncio
    async def test_start_after_end_is_rejected(self, service, providers):
        with pytest.raises(ValidationException):
            await service.create_rfq(
                rfq_payload(
                    preferred_start_date=(NOW + timedelta(days=20)).date(),
                    preferred_end_date=(NOW + timedelta(days=5)).date(),
                )
            )

    @pytest.mark.asyncio
    async def test_blank_title_is_rejected(self, service, providers):
        with pytest.raises(ValidationException):
            await service.create_rfq(rfq_payload(title="   "))

    @pytest.mark.asyncio
    async def test_unknown_and_inactive_providers_are_rejected(self, service, providers):
        with pytest.raises(ValidationException) as exc_info:
            await service.create_rfq(rfq_payload([uuid.uuid4(), providers["inactive"].id]))
        assert len(exc_info.value.details["field_errors"]["provider_ids"]) == 2


class TestUpdateRfq:
    @pytest.mark.asyncio
    async def test_draft_content_and_invitees_can_change(self, service, providers):
        rfq = await service.create_rfq(rfq_payload([providers["a"].id]))
        updated = await service.update_rfq(
            rfq.id,
            RfqUpdate(title="Boiler and radiators", provider_ids=[providers["b"].id, providers["c"].id]),
            NOW,
        )
        assert updated.title == "Boiler and radiators"
        assert set(updated.invited_provider_ids) == {providers["b"].id, providers["c"].id}

    @pytest.mark.asyncio
    async def test_budget_checked_against_stored_values(self, service, providers):
        rfq = await service.create_rfq(rfq_payload())
        with pytest.raises(ValidationException):
            await service.update_rfq(rfq.id, RfqUpdate(budget_min=Decimal("9000.00")), NOW)

    @pytest.mark.asyncio
    async def test_content_is_frozen_after_send(self, service, sent_rfq):
        with pytest.raises(InvalidStateException):
            await service.update_rfq(sent_rfq.id, RfqUpdate(title="Changed"), NOW)

    @pytest.mark.asyncio
    async def test_invitees_are_frozen_after_send(self, service, sent_rfq, providers):
        with pytest.raises(InvalidStateException):
            await service.update_rfq(sent_rfq.id, RfqUpdate(provider_ids=[providers["a"].id]), NOW)

    @pytest.mark.asyncio
    async def test_status_sent_sends_the_rfq(self, service, providers):
        rfq = await service.create_rfq(rfq_payload([providers["a"].id]))
        updated = await service.update_rfq(rfq.id, RfqUpdate(status=RfqStatus.SENT), NOW)
        assert updated.status == RfqStatus.SENT

    @pytest.mark.asyncio
    async def test_status_cancelled_cancels_the_rfq(self, service, sent_rfq):
        updated = await service.update_rfq(sent_rfq.id, RfqUpdate(status=RfqStatus.CANCELLED), NOW)
        assert updated.status == RfqStatus.CANCELLED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", [RfqStatus.AWARDED, RfqStatus.QUOTES_RECEIVED, RfqStatus.EXPIRED])
    async def test_automatic_statuses_cannot_be_requested(self, service, sent_rfq, target):
        with pytest.raises(InvalidTransitionException):
            await service.update_rfq(sent_rfq.id, RfqUpdate(status=target), NOW)

    @pytest.mark.asyncio
    async def test_required_field_cannot_be_cleared(self, service, providers):
        rfq = await service.create_rfq(rfq_payload())
        with pytest.raises(ValidationException):
            await service.update_rfq(rfq.id, RfqUpdate(service_category=None), NOW)


class TestDeleteRfq:
    @pytest.mark.asyncio
    async def test_draft_can_be_deleted(self, service, providers):
        rfq = await service.create_rfq(rfq_payload([providers["a"].id]))
        await service.delete_rfq(rfq.id)
        with pytest.raises(EntityNotFoundException):
            await service.get_rfq(rfq.id)

    @pytest.mark.asyncio
    async def test_sent_rfq_cannot_be_deleted(self, service, sent_rfq):
        with pytest.raises(InvalidStateException):
            await service.delete_rfq(sent_rfq.id)


# ---------------------------------------------------------------------------
# Send / cancel
# ---------------------------------------------------------------------------


class TestSendRfq:
    @pytest.mark.asyncio
    async def test_send_stamps_invitations(self, service, sent_rfq):
        assert sent_rfq.status == RfqStatus.SENT
        assert sent_rfq.sent_at is not None
        assert all(i.invited_at is not None for i in sent_rfq.invitations)

    @pytest.mark.asyncio
    async def test_send_without_invitees_fails_and_keeps_draft(self, service, providers):
        rfq = await service.create_rfq(rfq_payload())
        with pytest.raises(ValidationException):
            await service.send_rfq(rfq.id, NOW)
        assert (await service.get_rfq(rfq.id)).status == RfqStatus.DRAFT

    @pytest.mark.asyncio
    async def test_send_with_past_deadline_fails(self, service, providers):
        rfq = await service.create_rfq(
            rfq_payload([providers["a"].id], quote_deadline=NOW - timedelta(hours=1))
        )
        with pytest.raises(ValidationException):
            await service.send_rfq(rfq.id, NOW)

    @pytest.mark.asyncio
    async def test_sending_twice_is_an_invalid_transition(self, service, sent_rfq):
        with pytest.raises(InvalidTransitionException):
            await service.send_rfq(sent_rfq.id, NOW)

    @pytest.mark.asyncio
    async def test_unknown_rfq(self, service):
        with pytest.raises(EntityNotFoundException):
            await service.send_rfq(uuid.uuid4(), NOW)


class TestCancelRfq:
    @pytest.mark.asyncio
    async def test_cancel_sent_rfq(self, service, sent_rfq):
        rfq = await service.cancel_rfq(sent_rfq.id, NOW)
        assert rfq.status == RfqStatus.CANCELLED
        assert rfq.cancelled_at is not None

    @pytest.mark.asyncio
    async def test_cancel_after_quotes_received_fails(self, service, quoted_rfq):
        rfq, _ = quoted_rfq
        with pytest.raises(InvalidStateException):
            await service.cancel_rfq(rfq.id, NOW)

    @pytest.mark.asyncio
    async def test_cancel_awarded_rfq_fails(self, service, quoted_rfq):
        rfq, quotes = quoted_rfq
        await service.accept_quote(quotes["b"].id, LATER)
        with pytest.raises(InvalidStateException):
            await service.cancel_rfq(rfq.id, LATER)


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


class TestSubmitQuote:
    @pytest.mark.asyncio
    async def test_first_quote_moves_rfq_to_quotes_received(self, service, sent_rfq, providers):
        quote = await service.submit_quote(quote_payload(sent_rfq.id, providers["a"].id, "1500.00"), NOW)

        assert quote.status == QuoteStatus.SUBMITTED
        assert quote.currency == "EUR"
        assert (await service.get_rfq(sent_rfq.id)).status == RfqStatus.QUOTES_RECEIVED

    @pytest.mark.asyncio
    async def test_response_is_stamped_on_the_invitation(self, service, sent_rfq, providers):
        await service.submit_quote(quote_payload(sent_rfq.id, providers["a"].id, "1500.00"), NOW)
        rfq = await service.get_rfq(sent_rfq.id)
        invitation = next(i for i in rfq.invitations if i.provider_id == providers["a"].id)
        assert invitation.responded_at is not None

    @pytest.mark.asyncio
    async def test_draft_rfq_does_not_accept_quotes(self, service, providers):
        rfq = await service.create_rfq(rfq_payload([providers["a"].id]))
        with pytest.raises(InvalidStateException):
            await service.submit_quote(quote_payload(rfq.id, providers["a"].id, "100.00"), NOW)

    @pytest.mark.asyncio
    async def test_cancelled_rfq_does_not_accept_quotes(self, service, sent_rfq, providers):
        await service.cancel_rfq(sent_rfq.id, NOW)
        with pytest.raises(InvalidStateException):
            await service.submit_quote(quote_payload(sent_rfq.id, providers["a"].id, "100.00"), NOW)

    @pytest.mark.asyncio
    async def test_quotes_after_deadline_are_refused(self, service, sent_rfq, providers):
        with pytest.raises(InvalidStateException):
            await service.submit_quote(
                quote_payload(sent_rfq.id, providers["a"].id, "100.00", valid_until=None),
                NOW + timedelta(days=11),
            )

    @pytest.mark.asyncio
    async def test_uninvited_provider_is_refused(self, service, sent_rfq):
        with pytest.raises(ValidationException):
            await service.submit_quote(quote_payload(sent_rfq.id, uuid.uuid4(), "100.00"), NOW)

    @pytest.mark.asyncio
    async def test_currency_mismatch_is_a_data_integrity_error(self, service, sent_rfq, providers):
        with pytest.raises(DataIntegrityException):
            await service.submit_quote(
                quote_payload(sent_rfq.id, providers["a"].id, "100.00", currency="USD"), NOW
            )

    @pytest.mark.asyncio
    async def test_second_active_quote_is_a_duplicate(self, service, sent_rfq, providers):
        await service.submit_quote(quote_payload(sent_rfq.id, providers["a"].id, "100.00"), NOW)
        with pytest.raises(DuplicateEntityException):
            await service.submit_quote(quote_payload(sent_rfq.id, providers["a"].id, "90.00"), NOW)

    @pytest.mark.asyncio
    async def test_provider_can_quote_again_after_withdrawing(self, service, sent_rfq, providers):
        first = await service.submit_quote(quote_payload(sent_rfq.id, providers["a"].id, "100.00"), NOW)
        await service.withdraw_quote(first.id, NOW)
        second = await service.submit_quote(quote_payload(sent_rfq.id, providers["a"].id, "95.00"), NOW)
        assert second.status == QuoteStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_validity_in_the_past_is_rejected(self, service, sent_rfq, providers):
        with pytest.raises(ValidationException):
            await service.submit_quote(
                quote_payload(sent_rfq.id, providers["a"].id, "100.00", valid_until=NOW - timedelta(days=1)),
                NOW,
            )

    @pytest.mark.asyncio
    async def test_declined_provider_cannot_quote(self, service, sent_rfq, providers):
        invitation = next(i for i in sent_rfq.invitations if i.provider_id == providers["a"].id)
        await service.decline_invitation(invitation.id, NOW, reason="Fully booked")
        with pytest.raises(InvalidStateException):
            await service.submit_quote(quote_payload(sent_rfq.id, providers["a"].id, "100.00"), NOW)


class TestUpdateQuote:
    @pytest.mark.asyncio
    async def test_price_can_change_while_open(self, service, quoted_rfq):
        _, quotes = quoted_rfq
        quote = await service.update_quote(quotes["a"].id, QuoteUpdate(price=Decimal("1400.00")), LATER)
        assert quote.price == Decimal("1400.00")

    @pytest.mark.asyncio
    async def test_decided_quote_cannot_change(self, service, quoted_rfq):
        _, quotes = quoted_rfq
        await service.reject_quote(quotes["a"].id, LATER)
        with pytest.raises(InvalidStateException):
            await service.update_quote(quotes["a"].id, QuoteUpdate(price=Decimal("1.00")), LATER)


class TestAcceptQuote:
    @pytest.mark.asyncio
    async def test_accept_rejects_siblings_and_awards(self, service, quoted_rfq):
        rfq, quotes = quoted_rfq

        awarded, all_quotes = await service.accept_quote(quotes["b"].id, LATER)

        assert awarded.status == RfqStatus.AWARDED
        assert awarded.awarded_quote_id == quotes["b"].id
        assert awarded.awarded_to == quotes["b"].provider_id
        statuses = {q.id: q.status for q in all_quotes}
        assert statuses[quotes["b"].id] == QuoteStatus.ACCEPTED
        assert statuses[quotes["a"].id] == QuoteStatus.REJECTED
        assert statuses[quotes["c"].id] == QuoteStatus.REJECTED
        reasons = {q.id: q.status_reason for q in all_quotes}
        assert reasons[quotes["a"].id] == reasons[quotes["c"].id] == "Another quote was accepted"
        assert reasons[quotes["b"].id] is None

    @pytest.mark.asyncio
    async def test_second_accept_fails(self, service, quoted_rfq):
        _, quotes = quoted_rfq
        await service.accept_quote(quotes["b"].id, LATER)
        with pytest.raises(InvalidStateException):
            await service.accept_quote(quotes["a"].id, LATER)

    @pytest.mark.asyncio
    async def test_exactly_one_accepted_quote_per_rfq(self, service, db, quoted_rfq):
        rfq, quotes = quoted_rfq
        await service.accept_quote(quotes["c"].id, LATER)
        accepted = await db.scalar(
            select(func.count(ProviderQuote.id)).where(
                ProviderQuote.rfq_id == rfq.id,
                ProviderQuote.status == QuoteStatus.ACCEPTED,
            )
        )
        assert accepted == 1

    @pytest.mark.asyncio
    async def test_withdrawn_quote_cannot_be_accepted(self, service, quoted_rfq):
        rfq, quotes = quoted_rfq
        await service.withdraw_quote(quotes["a"].id, LATER)
        with pytest.raises(InvalidStateException):
            await service.accept_quote(quotes["a"].id, LATER)
        assert (await service.get_rfq(rfq.id)).status == RfqStatus.QUOTES_RECEIVED

    @pytest.mark.asyncio
    async def test_withdrawn_quotes_are_left_alone_on_award(self, service, quoted_rfq):
        _, quotes = quoted_rfq
        await service.withdraw_quote(quotes["a"].id, LATER)
        _, all_quotes = await service.accept_quote(quotes["b"].id, LATER)
        assert {q.id: q.status for q in all_quotes}[quotes["a"].id] == QuoteStatus.WITHDRAWN

    @pytest.mark.asyncio
    async def test_quote_of_another_rfq_is_refused(self, service, quoted_rfq):
        _, quotes = quoted_rfq
        with pytest.raises(ValidationException):
            await service.accept_quote(quotes["b"].id, LATER, rfq_id=uuid.uuid4())

    @pytest.mark.asyncio
    async def test_wall_clock_validity_does_not_block_accept(self, service, quoted_rfq):
        _, quotes = quoted_rfq
        awarded, _ = await service.accept_quote(quotes["b"].id, NOW + timedelta(days=40))
        assert awarded.status == RfqStatus.AWARDED


class TestRejectAndWithdraw:
    @pytest.mark.asyncio
    async def test_reject_quote(self, service, quoted_rfq):
        _, quotes = quoted_rfq
        quote = await service.reject_quote(quotes["a"].id, LATER, reason="Too expensive")
        assert quote.status == QuoteStatus.REJECTED
        assert quote.status_changed_at is not None
        assert quote.status_reason == "Too expensive"

    @pytest.mark.asyncio
    async def test_reject_twice_fails(self, service, quoted_rfq):
        _, quotes = quoted_rfq
        await service.reject_quote(quotes["a"].id, LATER)
        with pytest.raises(InvalidStateException):
            await service.reject_quote(quotes["a"].id, LATER)

    @pytest.mark.asyncio
    async def test_only_the_quoting_provider_can_withdraw(self, service, quoted_rfq, providers):
        _, quotes = quoted_rfq
        with pytest.raises(ValidationException):
            await service.withdraw_quote(quotes["a"].id, LATER, provider_id=providers["b"].id)
        quote = await service.withdraw_quote(
            quotes["a"].id, LATER, provider_id=providers["a"].id, reason="Crew unavailable"
        )
        assert quote.status == QuoteStatus.WITHDRAWN
        assert quote.status_reason == "Crew unavailable"

    @pytest.mark.asyncio
    async def test_reason_is_optional(self, service, quoted_rfq):
        _, quotes = quoted_rfq
        quote = await service.withdraw_quote(quotes["c"].id, LATER)
        assert quote.status_reason is None


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


class TestInvitations:
    @pytest.mark.asyncio
    async def test_provider_sees_only_sent_rfqs(self, service, sent_rfq, providers):
        await service.create_rfq(rfq_payload([providers["a"].id]))  # still a draft
        invitations = await service.list_provider_invitations(providers["a"].id)
        assert [i.rfq_id for i in invitations] == [sent_rfq.id]

    @pytest.mark.asyncio
    async def test_view_is_stamped_once(self, service, sent_rfq):
        invitation = sent_rfq.invitations[0]
        first_seen = (await service.view_invitation(invitation.id, NOW)).viewed_at
        second = await service.view_invitation(invitation.id, LATER)
        assert first_seen is not None
        assert second.viewed_at == first_seen

    @pytest.mark.asyncio
    async def test_decline_hides_invitation_from_open_list(self, service, sent_rfq, providers):
        invitation = next(i for i in sent_rfq.invitations if i.provider_id == providers["c"].id)
        declined = await service.decline_invitation(invitation.id, NOW, reason="Out of area")
        assert declined.declined
        assert declined.decline_reason == "Out of area"
        assert await service.list_provider_invitations(providers["c"].id, open_only=True) == []

    @pytest.mark.asyncio
    async def test_invitation_rfq_is_loaded_with_its_invitees(self, service, db, sent_rfq, providers):
        expected = set(sent_rfq.invited_provider_ids)
        invitation_id = sent_rfq.invitations[0].id
        db.expunge_all()

        listed = await service.list_provider_invitations(providers["a"].id)
        assert set(listed[0].rfq.invited_provider_ids) == expected

        db.expunge_all()
        viewed = await service.view_invitation(invitation_id, NOW)
        assert set(viewed.rfq.invited_provider_ids) == expected

        db.expunge_all()
        declined = await service.decline_invitation(invitation_id, NOW)
        assert set(declined.rfq.invited_provider_ids) == expected

    @pytest.mark.asyncio
    async def test_cannot_decline_with_an_active_quote(self, service, quoted_rfq, providers):
        rfq, _ = quoted_rfq
        invitation = next(i for i in rfq.invitations if i.provider_id == providers["a"].id)
        with pytest.raises(InvalidStateException):
            await service.decline_invitation(invitation.id, LATER)


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


class TestCompareRfqQuotes:
    @pytest.mark.asyncio
    async def test_compare_joins_provider_data(self, service, quoted_rfq, providers):
        rfq, quotes = quoted_rfq
        _, result = await service.compare_rfq_quotes(rfq.id)

        assert result.statistics.lowest == Decimal("1200.00")
        assert result.statistics.highest == Decimal("1800.00")
        assert result.statistics.average == Decimal("1500.00")
        assert result.best_price_quote_ids == [quotes["b"].id]

        rows = {row.quote.quote_id: row for row in result.rows}
        assert rows[quotes["b"].id].is_best_rating  # 4.80
        assert rows[quotes["c"].id].quote.provider_rating is None
        assert rows[quotes["a"].id].is_verified
        assert rows[quotes["a"].id].quote.provider_name == "Alpha Plumbing"
        assert all(row.is_best_warranty for row in result.rows)

    @pytest.mark.asyncio
    async def test_withdrawn_quotes_are_not_compared(self, service, quoted_rfq):
        rfq, quotes = quoted_rfq
        await service.withdraw_quote(quotes["b"].id, LATER)
        _, result = await service.compare_rfq_quotes(rfq.id)
        assert result.statistics.count == 2
        assert result.best_price_quote_ids == [quotes["a"].id]

    @pytest.mark.asyncio
    async def test_selected_quotes_only(self, service, quoted_rfq):
        rfq, quotes = quoted_rfq
        _, result = await service.compare_rfq_quotes(rfq.id, [quotes["a"].id, quotes["c"].id])
        assert result.statistics.count == 2
        assert result.statistics.lowest == Decimal("1500.00")

    @pytest.mark.asyncio
    async def test_unknown_selected_quote(self, service, quoted_rfq):
        rfq, _ = quoted_rfq
        with pytest.raises(ValidationException):
            await service.compare_rfq_quotes(rfq.id, [uuid.uuid4()])

    @pytest.mark.asyncio
    async def test_rfq_without_quotes(self, service, sent_rfq):
        _, result = await service.compare_rfq_quotes(sent_rfq.id)
        assert not result.statistics.is_defined
        assert result.statistics.average is None


# ---------------------------------------------------------------------------
# Expiry sweep
# ---------------------------------------------------------------------------


class TestSweepExpirations:
    @pytest.mark.asyncio
    async def test_expires_rfq_after_deadline(self, service, sent_rfq):
        result = await service.sweep_expirations(NOW + timedelta(days=11))
        assert result.expired_rfq_ids == [sent_rfq.id]
        rfq = await service.get_rfq(sent_rfq.id)
        assert rfq.status == RfqStatus.EXPIRED
        assert rfq.expired_at is not None

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, service, quoted_rfq):
        moment = NOW + timedelta(days=31)
        first = await service.sweep_expirations(moment)
        second = await service.sweep_expirations(moment)
        assert first.total == 4  # the RFQ and its three quotes
        assert second.total == 0

    @pytest.mark.asyncio
    async def test_nothing_expires_before_the_deadline(self, service, quoted_rfq):
        result = await service.sweep_expirations(NOW + timedelta(days=5))
        assert result.total == 0

    @pytest.mark.asyncio
    async def test_awarded_rfq_and_accepted_quote_survive(self, service, quoted_rfq):
        rfq, quotes = quoted_rfq
        await service.accept_quote(quotes["b"].id, LATER)

        result = await service.sweep_expirations(NOW + timedelta(days=31))

        assert result.total == 0
        assert (await service.get_rfq(rfq.id)).status == RfqStatus.AWARDED
        assert (await service.get_quote(quotes["b"].id)).status == QuoteStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_expired_quote_cannot_be_accepted(self, service, sent_rfq, providers):
        quote = await service.submit_quote(
            quote_payload(sent_rfq.id, providers["a"].id, "100.00", valid_until=NOW + timedelta(days=2)),
            NOW,
        )
        await service.sweep_expirations(NOW + timedelta(days=3))
        with pytest.raises(InvalidStateException):
            await service.accept_quote(quote.id, NOW + timedelta(days=3))
