"""
RFQ workflow service.

Owns every status change of RFQs, invitations and quotes. Each operation
checks the transition tables in ``lifecycle``, then applies the change with a
conditional UPDATE so two concurrent requests cannot both win (for example
two managers accepting different quotes of the same RFQ).

The service never commits. The request-scoped session from ``get_db`` commits
after the handler returns and rolls back when an exception escapes.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.core.config import Settings, get_settings
from marketplace.core.exceptions import (
    DataIntegrityException,
    DuplicateEntityException,
    EntityNotFoundException,
    InvalidStateException,
    ValidationException,
)
from marketplace.core.logging import LoggerMixin
from marketplace.models.quote import ProviderQuote, QuoteStatus
from marketplace.models.rfq import RequestForQuote, RfqInvitation, RfqStatus, ServiceCategory
from marketplace.schemas.quote import QuoteCreate, QuoteUpdate
from marketplace.schemas.rfq import RfqCreate, RfqUpdate
from marketplace.services.comparison import ComparableQuote, ComparisonResult, compare_quotes
from marketplace.services.deadlines import as_utc, is_past, utcnow
from marketplace.services.lifecycle import (
    QUOTE_ACTIVE_STATUSES,
    QUOTE_COMPARABLE_STATUSES,
    QUOTE_EXPIRABLE_STATUSES,
    QUOTE_OPEN_STATUSES,
    RFQ_AWARDABLE_STATUSES,
    RFQ_CANCELLABLE_STATUSES,
    RFQ_EXPIRABLE_STATUSES,
    RFQ_OPEN_FOR_QUOTES,
    Trigger,
    check_quote_transition,
    check_rfq_transition,
)
from marketplace.services.provider_directory import ProviderDirectory, build_provider_directory

MANAGER_ONLY = frozenset({Trigger.MANAGER})

SIBLING_REJECTED_REASON = "Another quote was accepted"

# Columns that may never be set to null through an update
_REQUIRED_RFQ_FIELDS = (
    "title",
    "description",
    "service_category",
    "is_urgent",
    "currency",
    "contact_preference",
    "site_visit_required",
)


@dataclass
class SweepResult:
    """Ids moved to ``expired`` by one sweep."""

    swept_at: datetime
    expired_rfq_ids: list[uuid.UUID] = field(default_factory=list)
    expired_quote_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.expired_rfq_ids) + len(self.expired_quote_ids)


class RfqService(LoggerMixin):
    """RFQ, invitation and quote lifecycle operations on one session."""

    def __init__(
        self,
        db: AsyncSession,
        directory: ProviderDirectory | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.directory = directory or build_provider_directory(db, self.settings)

    # =========================================================================
    # RFQs
    # =========================================================================

    async def create_rfq(self, data: RfqCreate, created_by: uuid.UUID | None = None) -> RequestForQuote:
        """
        Create a draft RFQ and its invitations.

        Raises:
            ValidationException: Inconsistent budget or dates, or unknown providers
        """
        values = data.model_dump(exclude={"provider_ids", "currency", "metadata"})
        self._validate_rfq_fields(values)

        provider_ids = list(dict.fromkeys(data.provider_ids))
        await self._require_providers(provider_ids)

        rfq = RequestForQuote(
            **values,
            currency=data.currency or self.settings.default_currency,
            extra_metadata=data.metadata,
            status=RfqStatus.DRAFT,
            created_by=created_by,
            invitations=[RfqInvitation(provider_id=pid) for pid in provider_ids],
        )
        self.db.add(rfq)
        await self.db.flush()

        self.logger.info(
            "RFQ created",
            rfq_id=str(rfq.id),
            service_category=rfq.service_category.value,
            invited=len(provider_ids),
        )
        return await self._get_rfq(rfq.id)

    async def get_rfq(self, rfq_id: uuid.UUID) -> RequestForQuote:
        return await self._get_rfq(rfq_id)

    async def list_rfqs(
        self,
        page: int = 1,
        page_size: int = 20,
        status: RfqStatus | None = None,
        service_category: ServiceCategory | None = None,
        building_id: uuid.UUID | None = None,
        provider_id: uuid.UUID | None = None,
        is_urgent: bool | None = None,
    ) -> tuple[list[RequestForQuote], int]:
        """List RFQs, newest first, with the total before pagination."""
        conditions = []
        if status:
            conditions.append(RequestForQuote.status == status)
        if service_category:
            conditions.append(RequestForQuote.service_category == service_category)
        if building_id:
            conditions.append(RequestForQuote.building_id == building_id)
        if is_urgent is not None:
            conditions.append(RequestForQuote.is_urgent == is_urgent)
        if provider_id:
            conditions.append(
                RequestForQuote.invitations.any(RfqInvitation.provider_id == provider_id)
            )

        total = await self.db.scalar(
            select(func.count(RequestForQuote.id)).where(*conditions)
        ) or 0

        query = (
            select(RequestForQuote)
            .where(*conditions)
            .order_by(RequestForQuote.created_at.desc(), RequestForQuote.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def update_rfq(
        self,
        rfq_id: uuid.UUID,
        data: RfqUpdate,
        now: datetime | None = None,
    ) -> RequestForQuote:
        """
        Edit a draft RFQ, or request a manager transition through ``status``.

        Content and invitee changes are only accepted while the RFQ is a draft.
        A status change must be a manager edge of the RFQ state machine
        (``sent`` or ``cancelled``); anything else is an invalid transition.

        Raises:
            InvalidStateException: Content edit on an RFQ that left draft
            InvalidTransitionException: Requested status is not a manager edge
            ValidationException: Inconsistent budget or dates
        """
        now = as_utc(now or utcnow())
        rfq = await self._get_rfq(rfq_id)

        changes = data.model_dump(exclude_unset=True)
        target = changes.pop("status", None)
        provider_ids = changes.pop("provider_ids", None)
        if "metadata" in changes:
            changes["extra_metadata"] = changes.pop("metadata")

        if changes or provider_ids is not None:
            if rfq.status != RfqStatus.DRAFT:
                raise InvalidStateException(
                    "RFQ",
                    str(rfq.id),
                    rfq.status.value,
                    "RFQ content and invitations can only be edited while draft",
                )

            nulls = [name for name in _REQUIRED_RFQ_FIELDS if name in changes and changes[name] is None]
            if nulls:
                raise ValidationException(
                    "Required RFQ fields cannot be cleared",
                    field_errors={name: ["must not be null"] for name in nulls},
                )

            merged = {
                "title": rfq.title,
                "description": rfq.description,
                "budget_min": rfq.budget_min,
                "budget_max": rfq.budget_max,
                "preferred_start_date": rfq.preferred_start_date,
                "preferred_end_date": rfq.preferred_end_date,
                **changes,
            }
            self._validate_rfq_fields(merged)

            for key, value in changes.items():
                setattr(rfq, key, value)
            if provider_ids is not None:
                await self._replace_invitations(rfq, provider_ids)

            await self.db.flush()
            self.logger.info("RFQ updated", rfq_id=str(rfq.id), fields=sorted(changes))

        if target is not None:
            check_rfq_transition(rfq.status, target, MANAGER_ONLY)
            if target == RfqStatus.SENT:
                return await self.send_rfq(rfq.id, now)
            return await self.cancel_rfq(rfq.id, now)

        return await self._get_rfq(rfq.id)

    async def delete_rfq(self, rfq_id: uuid.UUID) -> None:
        """Delete a draft RFQ. Anything already sent is kept for the record."""
        rfq = await self._get_rfq(rfq_id)
        if rfq.status != RfqStatus.DRAFT:
            raise InvalidStateException("RFQ", str(rfq.id), rfq.status.value, "Only draft RFQs can be deleted")

        await self.db.delete(rfq)
        await self.db.flush()
        self.logger.info("RFQ deleted", rfq_id=str(rfq_id))

    async def send_rfq(self, rfq_id: uuid.UUID, now: datetime | None = None) -> RequestForQuote:
        """
        Send a draft RFQ to its invited providers.

        Raises:
            InvalidTransitionException: RFQ is not a draft
            ValidationException: No invited provider, or deadline already past
        """
        now = as_utc(now or utcnow())
        rfq = await self._get_rfq(rfq_id)
        check_rfq_transition(rfq.status, RfqStatus.SENT, MANAGER_ONLY)

        if not rfq.invitations:
            raise ValidationException(
                "An RFQ needs at least one invited provider before it can be sent",
                field_errors={"provider_ids": ["at least one provider must be invited"]},
            )
        if is_past(rfq.quote_deadline, now):
            raise ValidationException(
                "The quote deadline has already passed",
                field_errors={"quote_deadline": ["must be in the future"]},
            )

        if not await self._swap_rfq_status(rfq.id, {RfqStatus.DRAFT}, status=RfqStatus.SENT, sent_at=now):
            raise await self._stale_rfq(rfq.id, "RFQ was changed by another request")

        for invitation in rfq.invitations:
            invitation.invited_at = now
        await self.db.flush()

        self._log_transition("RFQ", rfq.id, RfqStatus.DRAFT, RfqStatus.SENT, invited=len(rfq.invitations))
        return await self._get_rfq(rfq.id)

    async def cancel_rfq(
        self,
        rfq_id: uuid.UUID,
        now: datetime | None = None,
        reason: str | None = None,
    ) -> RequestForQuote:
        """Cancel a draft or sent RFQ."""
        now = as_utc(now or utcnow())
        rfq = await self._get_rfq(rfq_id)
        if rfq.status not in RFQ_CANCELLABLE_STATUSES:
            raise InvalidStateException(
                "RFQ",
                str(rfq.id),
                rfq.status.value,
                f"RFQ in status '{rfq.status.value}' cannot be cancelled",
            )

        previous = rfq.status
        if not await self._swap_rfq_status(
            rfq.id, RFQ_CANCELLABLE_STATUSES, status=RfqStatus.CANCELLED, cancelled_at=now
        ):
            raise await self._stale_rfq(rfq.id, "RFQ was changed by another request")

        self._log_transition("RFQ", rfq.id, previous, RfqStatus.CANCELLED, reason=reason)
        return await self._get_rfq(rfq.id)

    # =========================================================================
    # Quotes
    # =========================================================================

    async def submit_quote(self, data: QuoteCreate, now: datetime | None = None) -> ProviderQuote:
        """
        Record a provider's quote against an open RFQ.

        The first quote moves the RFQ from ``sent`` to ``quotes_received``.

        Raises:
            InvalidStateException: RFQ closed, deadline passed, or invitation declined
            ValidationException: Provider not invited, or inconsistent dates
            DataIntegrityException: Quote currency differs from the RFQ currency
            DuplicateEntityException: Provider already holds an active quote
        """
        now = as_utc(now or utcnow())
        rfq = await self._get_rfq(data.rfq_id)
        self._require_open_rfq(rfq, now)

        invitation = next((i for i in rfq.invitations if i.provider_id == data.provider_id), None)
        if invitation is None:
            raise ValidationException(
                "Provider was not invited to this RFQ",
                field_errors={"provider_id": ["not invited to this RFQ"]},
            )
        if invitation.declined:
            raise InvalidStateException(
                "Invitation",
                str(invitation.id),
                "declined",
                "Provider declined this RFQ and can no longer quote",
            )

        currency = data.currency or rfq.currency
        self._require_currency(rfq, currency)
        self._validate_quote_fields(
            data.estimated_start_date,
            data.estimated_end_date,
            data.valid_until,
            now,
        )

        existing = await self.db.scalar(
            select(ProviderQuote.id)
            .where(
                ProviderQuote.rfq_id == rfq.id,
                ProviderQuote.provider_id == data.provider_id,
                ProviderQuote.status.in_(QUOTE_ACTIVE_STATUSES),
            )
            .limit(1)
        )
        if existing:
            raise DuplicateEntityException("Quote", "rfq_id+provider_id", f"{rfq.id}/{data.provider_id}")

        quote = ProviderQuote(
            **data.model_dump(exclude={"currency"}),
            currency=currency,
            status=QuoteStatus.SUBMITTED,
            submitted_at=now,
            status_changed_at=now,
        )
        self.db.add(quote)
        invitation.responded_at = now
        await self.db.flush()

        self.logger.info(
            "Quote submitted",
            quote_id=str(quote.id),
            rfq_id=str(rfq.id),
            provider_id=str(quote.provider_id),
            price=str(quote.price),
            currency=quote.currency,
        )

        if rfq.status == RfqStatus.SENT:
            if await self._swap_rfq_status(rfq.id, {RfqStatus.SENT}, status=RfqStatus.QUOTES_RECEIVED):
                self._log_transition("RFQ", rfq.id, RfqStatus.SENT, RfqStatus.QUOTES_RECEIVED)
            else:
                # Lost a race; fine unless the RFQ was closed meanwhile
                current = await self._get_rfq(rfq.id)
                if current.status not in RFQ_OPEN_FOR_QUOTES:
                    raise InvalidStateException(
                        "RFQ",
                        str(rfq.id),
                        current.status.value,
                        "RFQ was closed while the quote was being submitted",
                    )

        return await self._get_quote(quote.id)

    async def get_quote(self, quote_id: uuid.UUID) -> ProviderQuote:
        return await self._get_quote(quote_id)

    async def list_quotes(
        self,
        page: int = 1,
        page_size: int = 20,
        provider_id: uuid.UUID | None = None,
        rfq_id: uuid.UUID | None = None,
        status: QuoteStatus | None = None,
    ) -> tuple[list[ProviderQuote], int]:
        """List quotes, newest first, with the total before pagination."""
        conditions = []
        if provider_id:
            conditions.append(ProviderQuote.provider_id == provider_id)
        if rfq_id:
            conditions.append(ProviderQuote.rfq_id == rfq_id)
        if status:
            conditions.append(ProviderQuote.status == status)

        total = await self.db.scalar(select(func.count(ProviderQuote.id)).where(*conditions)) or 0
        result = await self.db.execute(
            select(ProviderQuote)
            .where(*conditions)
            .order_by(ProviderQuote.created_at.desc(), ProviderQuote.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), total

    async def list_rfq_quotes(
        self,
        rfq_id: uuid.UUID,
        status: QuoteStatus | None = None,
    ) -> list[ProviderQuote]:
        """All quotes of one RFQ in submission order."""
        await self._get_rfq(rfq_id)
        query = select(ProviderQuote).where(ProviderQuote.rfq_id == rfq_id)
        if status:
            query = query.where(ProviderQuote.status == status)
        result = await self.db.execute(
            query.order_by(ProviderQuote.submitted_at, ProviderQuote.id).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def update_quote(
        self,
        quote_id: uuid.UUID,
        data: QuoteUpdate,
        now: datetime | None = None,
    ) -> ProviderQuote:
        """Edit price or terms of an open quote while the RFQ still takes quotes."""
        now = as_utc(now or utcnow())
        quote = await self._get_quote(quote_id)
        if quote.status not in QUOTE_OPEN_STATUSES:
            raise InvalidStateException(
                "Quote",
                str(quote.id),
                quote.status.value,
                f"Quote in status '{quote.status.value}' can no longer be edited",
            )
        rfq = await self._get_rfq(quote.rfq_id)
        self._require_open_rfq(rfq, now)

        changes = data.model_dump(exclude_unset=True)
        if "price" in changes and changes["price"] is None:
            raise ValidationException("Price is required", field_errors={"price": ["must not be null"]})
        if "currency" in changes:
            changes["currency"] = changes["currency"] or rfq.currency
            self._require_currency(rfq, changes["currency"])

        self._validate_quote_fields(
            changes.get("estimated_start_date", quote.estimated_start_date),
            changes.get("estimated_end_date", quote.estimated_end_date),
            changes.get("valid_until") if "valid_until" in changes else None,
            now,
        )

        for key, value in changes.items():
            setattr(quote, key, value)
        await self.db.flush()

        self.logger.info("Quote updated", quote_id=str(quote.id), fields=sorted(changes))
        return await self._get_quote(quote.id)

    async def accept_quote(
        self,
        quote_id: uuid.UUID,
        now: datetime | None = None,
        rfq_id: uuid.UUID | None = None,
    ) -> tuple[RequestForQuote, list[ProviderQuote]]:
        """
        Award the RFQ to one quote and reject its open siblings.

        The RFQ moves to ``awarded`` through a conditional update, so of two
        concurrent accepts on the same RFQ exactly one succeeds. Wall-clock
        validity of the quote is not consulted; only an ``expired`` status
        blocks acceptance.

        Args:
            quote_id: Winning quote
            now: Reference instant for the award timestamps
            rfq_id: When given, the quote must belong to this RFQ

        Returns:
            The awarded RFQ and all its quotes in their new statuses

        Raises:
            InvalidStateException: Quote not open, or RFQ not awardable
            ValidationException: Quote belongs to another RFQ
        """
        now = as_utc(now or utcnow())
        quote = await self._get_quote(quote_id)
        if rfq_id is not None and quote.rfq_id != rfq_id:
            raise ValidationException(
                "Quote does not belong to this RFQ",
                field_errors={"quote_id": ["not a quote of this RFQ"]},
            )
        if quote.status not in QUOTE_OPEN_STATUSES:
            raise InvalidStateException(
                "Quote",
                str(quote.id),
                quote.status.value,
                f"Quote in status '{quote.status.value}' cannot be accepted",
            )
        check_quote_transition(quote.status, QuoteStatus.ACCEPTED)

        rfq = await self._get_rfq(quote.rfq_id)
        if rfq.status not in RFQ_AWARDABLE_STATUSES:
            raise InvalidStateException(
                "RFQ",
                str(rfq.id),
                rfq.status.value,
                f"RFQ in status '{rfq.status.value}' cannot be awarded",
            )

        previous = rfq.status
        previous_quote = quote.status
        awarded = await self._swap_rfq_status(
            rfq.id,
            RFQ_AWARDABLE_STATUSES,
            status=RfqStatus.AWARDED,
            awarded_quote_id=quote.id,
            awarded_to=quote.provider_id,
            awarded_at=now,
        )
        if not awarded:
            raise await self._stale_rfq(rfq.id, "RFQ was awarded or closed by another request")

        if not await self._swap_quote_status(
            quote.id, QUOTE_OPEN_STATUSES, status=QuoteStatus.ACCEPTED, status_changed_at=now
        ):
            current = await self._get_quote(quote.id)
            raise InvalidStateException(
                "Quote",
                str(quote.id),
                current.status.value,
                "Quote was changed by another request",
            )

        result = await self.db.execute(
            update(ProviderQuote)
            .where(
                ProviderQuote.rfq_id == rfq.id,
                ProviderQuote.id != quote.id,
                ProviderQuote.status.in_(QUOTE_OPEN_STATUSES),
            )
            .values(
                status=QuoteStatus.REJECTED,
                status_changed_at=now,
                status_reason=SIBLING_REJECTED_REASON,
            )
            .returning(ProviderQuote.id)
            .execution_options(synchronize_session=False)
        )
        rejected_ids = list(result.scalars().all())

        self._log_transition("RFQ", rfq.id, previous, RfqStatus.AWARDED, quote_id=str(quote.id))
        self._log_transition("Quote", quote.id, previous_quote, QuoteStatus.ACCEPTED, rfq_id=str(rfq.id))
        if rejected_ids:
            self.logger.info(
                "Sibling quotes rejected",
                rfq_id=str(rfq.id),
                quote_ids=[str(qid) for qid in rejected_ids],
            )

        return await self._get_rfq(rfq.id), await self.list_rfq_quotes(rfq.id)

    async def reject_quote(
        self,
        quote_id: uuid.UUID,
        now: datetime | None = None,
        reason: str | None = None,
    ) -> ProviderQuote:
        """Manager rejects one open quote."""
        return await self._close_quote(quote_id, QuoteStatus.REJECTED, now, reason)

    async def withdraw_quote(
        self,
        quote_id: uuid.UUID,
        now: datetime | None = None,
        provider_id: uuid.UUID | None = None,
        reason: str | None = None,
    ) -> ProviderQuote:
        """Provider pulls back its own open quote."""
        if provider_id is not None:
            quote = await self._get_quote(quote_id)
            if quote.provider_id != provider_id:
                raise ValidationException(
                    "Only the quoting provider can withdraw a quote",
                    field_errors={"provider_id": ["does not own this quote"]},
                )
        return await self._close_quote(quote_id, QuoteStatus.WITHDRAWN, now, reason)

    async def _close_quote(
        self,
        quote_id: uuid.UUID,
        target: QuoteStatus,
        now: datetime | None,
        reason: str | None = None,
    ) -> ProviderQuote:
        now = as_utc(now or utcnow())
        quote = await self._get_quote(quote_id)
        if quote.status not in QUOTE_OPEN_STATUSES:
            raise InvalidStateException(
                "Quote",
                str(quote.id),
                quote.status.value,
                f"Quote in status '{quote.status.value}' cannot be {target.value}",
            )
        check_quote_transition(quote.status, target)

        previous = quote.status
        if not await self._swap_quote_status(
            quote.id, QUOTE_OPEN_STATUSES, status=target, status_changed_at=now, status_reason=reason
        ):
            current = await self._get_quote(quote.id)
            raise InvalidStateException(
                "Quote",
                str(quote.id),
                current.status.value,
                "Quote was changed by another request",
            )

        self._log_transition("Quote", quote.id, previous, target, rfq_id=str(quote.rfq_id), reason=reason)
        return await self._get_quote(quote.id)

    # =========================================================================
    # Invitations
    # =========================================================================

    async def list_provider_invitations(
        self,
        provider_id: uuid.UUID,
        open_only: bool = False,
    ) -> list[RfqInvitation]:
        """Invitations a provider has received. Drafts are not visible yet."""
        query = (
            select(RfqInvitation)
            .join(RequestForQuote, RfqInvitation.rfq_id == RequestForQuote.id)
            .where(
                RfqInvitation.provider_id == provider_id,
                RequestForQuote.status != RfqStatus.DRAFT,
            )
            .options(selectinload(RfqInvitation.rfq).selectinload(RequestForQuote.invitations))
            .order_by(RfqInvitation.invited_at.desc(), RfqInvitation.id)
            .execution_options(populate_existing=True)
        )
        if open_only:
            query = query.where(
                RequestForQuote.status.in_(RFQ_OPEN_FOR_QUOTES),
                RfqInvitation.declined.is_(False),
            )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def view_invitation(self, invitation_id: uuid.UUID, now: datetime | None = None) -> RfqInvitation:
        """Mark an invitation as seen by the provider. Only the first view is stamped."""
        now = as_utc(now or utcnow())
        invitation = await self._get_invitation(invitation_id)
        if invitation.viewed_at is None:
            invitation.viewed_at = now
            await self.db.flush()
            self.logger.info(
                "Invitation viewed",
                invitation_id=str(invitation.id),
                rfq_id=str(invitation.rfq_id),
                provider_id=str(invitation.provider_id),
            )
        return await self._get_invitation(invitation.id)

    async def decline_invitation(
        self,
        invitation_id: uuid.UUID,
        now: datetime | None = None,
        reason: str | None = None,
    ) -> RfqInvitation:
        """
        Provider declines to quote.

        Raises:
            InvalidStateException: RFQ closed, already declined, or an active quote exists
        """
        now = as_utc(now or utcnow())
        invitation = await self._get_invitation(invitation_id)
        rfq = invitation.rfq
        if rfq.status not in RFQ_OPEN_FOR_QUOTES:
            raise InvalidStateException(
                "RFQ",
                str(rfq.id),
                rfq.status.value,
                f"Invitations of an RFQ in status '{rfq.status.value}' cannot be declined",
            )
        if invitation.declined:
            raise InvalidStateException("Invitation", str(invitation.id), "declined", "Invitation already declined")

        active = await self.db.scalar(
            select(ProviderQuote.id)
            .where(
                ProviderQuote.rfq_id == rfq.id,
                ProviderQuote.provider_id == invitation.provider_id,
                ProviderQuote.status.in_(QUOTE_ACTIVE_STATUSES),
            )
            .limit(1)
        )
        if active:
            raise InvalidStateException(
                "Invitation",
                str(invitation.id),
                "responded",
                "Provider has an active quote; withdraw it before declining",
            )

        invitation.declined = True
        invitation.decline_reason = reason
        invitation.responded_at = now
        await self.db.flush()

        self.logger.info(
            "Invitation declined",
            invitation_id=str(invitation.id),
            rfq_id=str(rfq.id),
            provider_id=str(invitation.provider_id),
        )
        return await self._get_invitation(invitation.id)

    # =========================================================================
    # Comparison and expiry
    # =========================================================================

    async def compare_rfq_quotes(
        self,
        rfq_id: uuid.UUID,
        quote_ids: list[uuid.UUID] | None = None,
    ) -> tuple[RequestForQuote, ComparisonResult]:
        """
        Compare the quotes of one RFQ, optionally narrowed to ``quote_ids``.

        Raises:
            ValidationException: A selected id is not a comparable quote of this RFQ
            DataIntegrityException: Quotes do not share the RFQ currency
        """
        rfq = await self._get_rfq(rfq_id)
        result = await self.db.execute(
            select(ProviderQuote)
            .where(
                ProviderQuote.rfq_id == rfq.id,
                ProviderQuote.status.in_(QUOTE_COMPARABLE_STATUSES),
            )
            .execution_options(populate_existing=True)
        )
        quotes = list(result.scalars().all())

        if quote_ids:
            wanted = set(quote_ids)
            unknown = wanted - {q.id for q in quotes}
            if unknown:
                raise ValidationException(
                    "Some quotes cannot be compared",
                    field_errors={"quote_ids": [f"{qid} is not a comparable quote of this RFQ" for qid in sorted(map(str, unknown))]},
                )
            quotes = [q for q in quotes if q.id in wanted]

        profiles = await self.directory.get_profiles([q.provider_id for q in quotes])
        comparable = []
        for q in quotes:
            profile = profiles.get(q.provider_id)
            comparable.append(
                ComparableQuote(
                    quote_id=q.id,
                    provider_id=q.provider_id,
                    price=q.price,
                    currency=q.currency,
                    status=q.status.value,
                    provider_name=profile.company_name if profile else None,
                    provider_rating=profile.rating if profile else None,
                    provider_verified=profile.is_verified if profile else False,
                    warranty_period_days=q.warranty_period_days,
                    estimated_start_date=q.estimated_start_date,
                    estimated_end_date=q.estimated_end_date,
                    estimated_duration_days=q.estimated_duration_days,
                    valid_until=as_utc(q.valid_until) if q.valid_until else None,
                )
            )

        return rfq, compare_quotes(comparable, expected_currency=rfq.currency)

    async def sweep_expirations(self, now: datetime | None = None) -> SweepResult:
        """
        Expire RFQs past their quote deadline and quotes past their validity.

        Only rows still in an expirable status are touched, so an RFQ awarded
        or a quote accepted just before the sweep keeps its status. Running
        the sweep twice with the same ``now`` changes nothing the second time.
        """
        now = as_utc(now or utcnow())
        await self.db.flush()

        rfq_result = await self.db.execute(
            update(RequestForQuote)
            .where(
                RequestForQuote.status.in_(RFQ_EXPIRABLE_STATUSES),
                RequestForQuote.quote_deadline.is_not(None),
                RequestForQuote.quote_deadline < now,
            )
            .values(status=RfqStatus.EXPIRED, expired_at=now)
            .returning(RequestForQuote.id)
            .execution_options(synchronize_session=False)
        )
        sweep = SweepResult(swept_at=now, expired_rfq_ids=list(rfq_result.scalars().all()))

        quote_result = await self.db.execute(
            update(ProviderQuote)
            .where(
                ProviderQuote.status.in_(QUOTE_EXPIRABLE_STATUSES),
                ProviderQuote.valid_until.is_not(None),
                ProviderQuote.valid_until < now,
            )
            .values(status=QuoteStatus.EXPIRED, status_changed_at=now)
            .returning(ProviderQuote.id)
            .execution_options(synchronize_session=False)
        )
        sweep.expired_quote_ids = list(quote_result.scalars().all())

        self.logger.info(
            "Expiration sweep finished",
            swept_at=now.isoformat(),
            expired_rfqs=len(sweep.expired_rfq_ids),
            expired_quotes=len(sweep.expired_quote_ids),
        )
        return sweep

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_rfq(self, rfq_id: uuid.UUID) -> RequestForQuote:
        """Load an RFQ fresh from the database, overwriting stale identity-map state."""
        await self.db.flush()
        result = await self.db.execute(
            select(RequestForQuote)
            .where(RequestForQuote.id == rfq_id)
            .execution_options(populate_existing=True)
        )
        rfq = result.scalar_one_or_none()
        if rfq is None:
            raise EntityNotFoundException("RFQ", str(rfq_id))
        return rfq

    async def _get_quote(self, quote_id: uuid.UUID) -> ProviderQuote:
        await self.db.flush()
        result = await self.db.execute(
            select(ProviderQuote)
            .where(ProviderQuote.id == quote_id)
            .execution_options(populate_existing=True)
        )
        quote = result.scalar_one_or_none()
        if quote is None:
            raise EntityNotFoundException("Quote", str(quote_id))
        return quote

    async def _get_invitation(self, invitation_id: uuid.UUID) -> RfqInvitation:
        await self.db.flush()
        result = await self.db.execute(
            select(RfqInvitation)
            .where(RfqInvitation.id == invitation_id)
            .options(selectinload(RfqInvitation.rfq).selectinload(RequestForQuote.invitations))
            .execution_options(populate_existing=True)
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise EntityNotFoundException("Invitation", str(invitation_id))
        return invitation

    async def _swap_rfq_status(self, rfq_id: uuid.UUID, expected: set | frozenset, **values: Any) -> bool:
        """Conditional update; False when the RFQ is no longer in ``expected``."""
        await self.db.flush()
        result = await self.db.execute(
            update(RequestForQuote)
            .where(RequestForQuote.id == rfq_id, RequestForQuote.status.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _swap_quote_status(self, quote_id: uuid.UUID, expected: set | frozenset, **values: Any) -> bool:
        await self.db.flush()
        result = await self.db.execute(
            update(ProviderQuote)
            .where(ProviderQuote.id == quote_id, ProviderQuote.status.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _stale_rfq(self, rfq_id: uuid.UUID, message: str) -> InvalidStateException:
        current = await self._get_rfq(rfq_id)
        return InvalidStateException("RFQ", str(rfq_id), current.status.value, message)

    async def _require_providers(self, provider_ids: list[uuid.UUID]) -> None:
        """Every id must name an active provider in the directory."""
        if not provider_ids:
            return
        profiles = await self.directory.get_profiles(provider_ids)
        problems = []
        for pid in provider_ids:
            profile = profiles.get(pid)
            if profile is None:
                problems.append(f"{pid} is not a known provider")
            elif not profile.is_active:
                problems.append(f"{pid} is not an active provider")
        if problems:
            raise ValidationException("Invalid invited providers", field_errors={"provider_ids": problems})

    async def _replace_invitations(self, rfq: RequestForQuote, provider_ids: list[uuid.UUID]) -> None:
        wanted = list(dict.fromkeys(provider_ids))
        current = set(rfq.invited_provider_ids)
        await self._require_providers([pid for pid in wanted if pid not in current])

        kept = [i for i in rfq.invitations if i.provider_id in wanted]
        kept_ids = {i.provider_id for i in kept}
        rfq.invitations = kept + [RfqInvitation(provider_id=pid) for pid in wanted if pid not in kept_ids]

    def _require_open_rfq(self, rfq: RequestForQuote, now: datetime) -> None:
        if rfq.status not in RFQ_OPEN_FOR_QUOTES:
            raise InvalidStateException(
                "RFQ",
                str(rfq.id),
                rfq.status.value,
                f"RFQ in status '{rfq.status.value}' is not accepting quotes",
            )
        if is_past(rfq.quote_deadline, now):
            raise InvalidStateException(
                "RFQ",
                str(rfq.id),
                rfq.status.value,
                "The quote deadline has passed",
            )

    @staticmethod
    def _require_currency(rfq: RequestForQuote, currency: str) -> None:
        if currency.upper() != rfq.currency.upper():
            raise DataIntegrityException(
                "Quote currency must match the RFQ currency",
                {"rfq_currency": rfq.currency, "quote_currency": currency},
            )

    @staticmethod
    def _validate_rfq_fields(values: dict[str, Any]) -> None:
        errors: dict[str, list[str]] = {}
        for name in ("title", "description"):
            if name in values and not (values[name] or "").strip():
                errors[name] = ["must not be blank"]

        budget_min: Decimal | None = values.get("budget_min")
        budget_max: Decimal | None = values.get("budget_max")
        if budget_min is not None and budget_max is not None and budget_min > budget_max:
            errors["budget_max"] = ["must be greater than or equal to budget_min"]

        start: date | None = values.get("preferred_start_date")
        end: date | None = values.get("preferred_end_date")
        if start is not None and end is not None and start > end:
            errors["preferred_end_date"] = ["must not be before preferred_start_date"]

        if errors:
            raise ValidationException("Invalid RFQ", field_errors=errors)

    @staticmethod
    def _validate_quote_fields(
        start: date | None,
        end: date | None,
        valid_until: datetime | None,
        now: datetime,
    ) -> None:
        errors: dict[str, list[str]] = {}
        if start is not None and end is not None and start > end:
            errors["estimated_end_date"] = ["must not be before estimated_start_date"]
        if valid_until is not None and as_utc(valid_until) <= now:
            errors["valid_until"] = ["must be in the future"]
        if errors:
            raise ValidationException("Invalid quote", field_errors=errors)

    def _log_transition(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        from_status: Any,
        to_status: Any,
        **context: Any,
    ) -> None:
        self.logger.info(
            f"{entity_type} status changed",
            entity_id=str(entity_id),
            from_status=getattr(from_status, "value", from_status),
            to_status=getattr(to_status, "value", to_status),
            **context,
        )
