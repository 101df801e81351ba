"""
Provider reputation service.

Keeps the reputation fields of ServiceProvider in step with their sources:
``rating`` and ``review_count`` are recomputed from provider_reviews after
every new review, and ``is_verified`` from provider_verifications after every
verification decision. Neither can be written through the provider API.

Like RfqService, this service flushes but never commits.
"""

import uuid
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import (
    DuplicateEntityException,
    EntityNotFoundException,
    InvalidStateException,
    ValidationException,
)
from marketplace.core.logging import LoggerMixin
from marketplace.models.provider import (
    ProviderReview,
    ProviderVerification,
    ServiceProvider,
    VerificationStatus,
)
from marketplace.models.rfq import RequestForQuote, RfqStatus
from marketplace.schemas.provider import (
    RatingBreakdown,
    RatingDistribution,
    ReviewCreate,
    VerificationCreate,
    VerificationReview,
)
from marketplace.services.deadlines import as_utc, utcnow

REVIEWABLE_VERIFICATION_STATUSES = frozenset(
    {VerificationStatus.PENDING, VerificationStatus.UNDER_REVIEW}
)

_TWO_PLACES = Decimal("0.01")


def overall_rating(quality: int, timeliness: int, communication: int, value: int) -> int:
    """Average of the four dimensions, rounded half up to whole stars."""
    average = Decimal(quality + timeliness + communication + value) / 4
    return int(average.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _two_places(value: Any) -> Decimal | None:
    # SQLite averages come back as float, PostgreSQL as Decimal
    if value is None:
        return None
    return Decimal(str(value)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


class ProviderService(LoggerMixin):
    """Reviews, verifications and the provider fields derived from them."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_provider(self, provider_id: uuid.UUID) -> ServiceProvider:
        result = await self.db.execute(
            select(ServiceProvider).where(ServiceProvider.id == provider_id)
        )
        provider = result.scalar_one_or_none()
        if provider is None:
            raise EntityNotFoundException("ServiceProvider", str(provider_id))
        return provider

    # =========================================================================
    # Reviews
    # =========================================================================

    async def add_review(self, provider_id: uuid.UUID, data: ReviewCreate) -> ProviderReview:
        """
        Record a review and recompute the provider's rating.

        A review tied to an RFQ is only accepted when that RFQ was awarded to
        this provider, and only once per RFQ.

        Raises:
            EntityNotFoundException: Unknown provider or RFQ
            ValidationException: RFQ was not awarded to this provider
            DuplicateEntityException: RFQ already reviewed
        """
        provider = await self.get_provider(provider_id)

        if data.rfq_id is not None:
            rfq = await self.db.scalar(
                select(RequestForQuote)
                .where(RequestForQuote.id == data.rfq_id)
                .execution_options(populate_existing=True)
            )
            if rfq is None:
                raise EntityNotFoundException("RFQ", str(data.rfq_id))
            if rfq.status != RfqStatus.AWARDED or rfq.awarded_to != provider.id:
                raise ValidationException(
                    "Only an RFQ awarded to this provider can be reviewed",
                    field_errors={"rfq_id": ["not awarded to this provider"]},
                )
            existing = await self.db.scalar(
                select(ProviderReview.id).where(
                    ProviderReview.provider_id == provider.id,
                    ProviderReview.rfq_id == data.rfq_id,
                )
            )
            if existing:
                raise DuplicateEntityException("ProviderReview", "rfq_id", str(data.rfq_id))

        review = ProviderReview(
            provider_id=provider.id,
            overall_rating=overall_rating(
                data.quality_rating,
                data.timeliness_rating,
                data.communication_rating,
                data.value_rating,
            ),
            **data.model_dump(),
        )
        self.db.add(review)
        await self.db.flush()

        await self._refresh_rating(provider)

        self.logger.info(
            "Provider reviewed",
            provider_id=str(provider.id),
            review_id=str(review.id),
            overall_rating=review.overall_rating,
            rating=str(provider.rating),
            review_count=provider.review_count,
        )
        return review

    async def list_reviews(
        self,
        provider_id: uuid.UUID,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[ProviderReview], int]:
        """A provider's reviews, newest first, with the total before pagination."""
        await self.get_provider(provider_id)

        total = await self.db.scalar(
            select(func.count(ProviderReview.id)).where(ProviderReview.provider_id == provider_id)
        ) or 0
        result = await self.db.execute(
            select(ProviderReview)
            .where(ProviderReview.provider_id == provider_id)
            .order_by(ProviderReview.created_at.desc(), ProviderReview.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def rating_breakdown(self, provider_id: uuid.UUID) -> RatingBreakdown:
        """Per-dimension averages and the star distribution of overall ratings."""
        await self.get_provider(provider_id)

        row = (
            await self.db.execute(
                select(
                    func.count(ProviderReview.id),
                    func.avg(ProviderReview.overall_rating),
                    func.avg(ProviderReview.quality_rating),
                    func.avg(ProviderReview.timeliness_rating),
                    func.avg(ProviderReview.communication_rating),
                    func.avg(ProviderReview.value_rating),
                ).where(ProviderReview.provider_id == provider_id)
            )
        ).one()

        counts = await self.db.execute(
            select(ProviderReview.overall_rating, func.count(ProviderReview.id))
            .where(ProviderReview.provider_id == provider_id)
            .group_by(ProviderReview.overall_rating)
        )
        stars = dict(counts.all())

        return RatingBreakdown(
            provider_id=provider_id,
            total_reviews=row[0],
            average_overall=_two_places(row[1]),
            average_quality=_two_places(row[2]),
            average_timeliness=_two_places(row[3]),
            average_communication=_two_places(row[4]),
            average_value=_two_places(row[5]),
            rating_distribution=RatingDistribution(
                five_star=stars.get(5, 0),
                four_star=stars.get(4, 0),
                three_star=stars.get(3, 0),
                two_star=stars.get(2, 0),
                one_star=stars.get(1, 0),
            ),
        )

    async def _refresh_rating(self, provider: ServiceProvider) -> None:
        count, average = (
            await self.db.execute(
                select(func.count(ProviderReview.id), func.avg(ProviderReview.overall_rating))
                .where(ProviderReview.provider_id == provider.id)
            )
        ).one()
        provider.review_count = count
        provider.rating = _two_places(average) if count else None
        await self.db.flush()
        await self.db.refresh(provider)

    # =========================================================================
    # Verifications
    # =========================================================================

    async def submit_verification(self, data: VerificationCreate) -> ProviderVerification:
        """Queue a credential document for review."""
        provider = await self.get_provider(data.provider_id)

        verification = ProviderVerification(
            **data.model_dump(exclude={"metadata"}),
            extra_metadata=data.metadata,
            status=VerificationStatus.PENDING,
        )
        self.db.add(verification)
        await self.db.flush()

        self.logger.info(
            "Verification submitted",
            provider_id=str(provider.id),
            verification_id=str(verification.id),
            verification_type=verification.verification_type.value,
        )
        return verification

    async def get_verification(self, verification_id: uuid.UUID) -> ProviderVerification:
        await self.db.flush()
        result = await self.db.execute(
            select(ProviderVerification)
            .where(ProviderVerification.id == verification_id)
            .execution_options(populate_existing=True)
        )
        verification = result.scalar_one_or_none()
        if verification is None:
            raise EntityNotFoundException("ProviderVerification", str(verification_id))
        return verification

    async def list_verifications(
        self,
        provider_id: uuid.UUID | None = None,
        status: VerificationStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[ProviderVerification], int]:
        """Verifications oldest first, so the review queue is worked in order."""
        conditions = []
        if provider_id:
            conditions.append(ProviderVerification.provider_id == provider_id)
        if status:
            conditions.append(ProviderVerification.status == status)

        total = await self.db.scalar(
            select(func.count(ProviderVerification.id)).where(*conditions)
        ) or 0
        result = await self.db.execute(
            select(ProviderVerification)
            .where(*conditions)
            .order_by(ProviderVerification.created_at, ProviderVerification.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def review_verification(
        self,
        verification_id: uuid.UUID,
        data: VerificationReview,
        now: datetime | None = None,
    ) -> ProviderVerification:
        """
        Record a reviewer decision and recompute the provider's ``is_verified``.

        Only pending or under-review documents can be decided; the status
        change is a conditional update so two reviewers cannot both decide.

        Raises:
            EntityNotFoundException: Unknown verification
            InvalidStateException: Verification already decided
        """
        now = as_utc(now or utcnow())
        verification = await self.get_verification(verification_id)
        if verification.status not in REVIEWABLE_VERIFICATION_STATUSES:
            raise InvalidStateException(
                "ProviderVerification",
                str(verification.id),
                verification.status.value,
                f"Verification in status '{verification.status.value}' cannot be reviewed",
            )

        previous = verification.status
        result = await self.db.execute(
            update(ProviderVerification)
            .where(
                ProviderVerification.id == verification.id,
                ProviderVerification.status.in_(REVIEWABLE_VERIFICATION_STATUSES),
            )
            .values(
                status=data.status,
                reviewed_by=data.reviewed_by,
                reviewed_at=now,
                rejection_reason=(
                    data.rejection_reason if data.status == VerificationStatus.REJECTED else None
                ),
                notes=data.notes,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self.get_verification(verification.id)
            raise InvalidStateException(
                "ProviderVerification",
                str(verification.id),
                current.status.value,
                "Verification was reviewed by another request",
            )

        provider = await self.get_provider(verification.provider_id)
        await self._refresh_verified(provider, now.date())

        self.logger.info(
            "Verification reviewed",
            verification_id=str(verification.id),
            provider_id=str(provider.id),
            from_status=previous.value,
            to_status=data.status.value,
            is_verified=provider.is_verified,
        )
        return await self.get_verification(verification.id)

    async def _refresh_verified(self, provider: ServiceProvider, today: date) -> None:
        """A provider is verified while any approved document is unexpired."""
        valid = await self.db.scalar(
            select(func.count(ProviderVerification.id)).where(
                ProviderVerification.provider_id == provider.id,
                ProviderVerification.status == VerificationStatus.VERIFIED,
                or_(
                    ProviderVerification.expiry_date.is_(None),
                    ProviderVerification.expiry_date >= today,
                ),
            )
        )
        if provider.is_verified != bool(valid):
            provider.is_verified = bool(valid)
            await self.db.flush()
            await self.db.refresh(provider)
