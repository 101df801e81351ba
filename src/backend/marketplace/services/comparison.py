"""
Side-by-side quote comparison.

``compare_quotes`` is a pure function: it takes the quotes of one RFQ joined
with provider directory data and returns per-criterion "best" flags plus price
statistics. It never mutates anything and ignores input order.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from marketplace.core.exceptions import DataIntegrityException

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ComparableQuote:
    """One quote as the comparison sees it."""

    quote_id: uuid.UUID
    provider_id: uuid.UUID
    price: Decimal
    currency: str
    status: str
    provider_name: str | None = None
    provider_rating: Decimal | None = None
    provider_verified: bool = False
    warranty_period_days: int | None = None
    estimated_start_date: date | None = None
    estimated_end_date: date | None = None
    estimated_duration_days: int | None = None
    valid_until: datetime | None = None


@dataclass(frozen=True)
class ComparisonRow:
    """A quote with the criteria it wins on."""

    quote: ComparableQuote
    is_best_price: bool = False
    is_best_rating: bool = False
    is_best_warranty: bool = False
    is_verified: bool = False

    @property
    def is_rated(self) -> bool:
        return self.quote.provider_rating is not None

    @property
    def best_criteria(self) -> list[str]:
        flags = {
            "price": self.is_best_price,
            "rating": self.is_best_rating,
            "warranty": self.is_best_warranty,
            "verified": self.is_verified,
        }
        return [name for name, won in flags.items() if won]


@dataclass(frozen=True)
class PriceStatistics:
    """
    Price summary over the compared quotes.

    All amounts are None for an empty comparison so "no data" is never
    mistaken for a price of zero.
    """

    count: int = 0
    currency: str | None = None
    lowest: Decimal | None = None
    highest: Decimal | None = None
    average: Decimal | None = None

    @property
    def is_defined(self) -> bool:
        return self.count > 0


@dataclass(frozen=True)
class ComparisonResult:
    rows: list[ComparisonRow] = field(default_factory=list)
    statistics: PriceStatistics = field(default_factory=PriceStatistics)

    @property
    def best_price_quote_ids(self) -> list[uuid.UUID]:
        return [row.quote.quote_id for row in self.rows if row.is_best_price]


def _common_currency(quotes: list[ComparableQuote], expected: str | None) -> str | None:
    currencies = {q.currency.upper() for q in quotes}
    if expected is not None:
        currencies.add(expected.upper())
    if len(currencies) > 1:
        raise DataIntegrityException(
            "Quotes being compared use different currencies",
            {"currencies": sorted(currencies)},
        )
    return next(iter(currencies), None)


def compare_quotes(
    quotes: list[ComparableQuote],
    expected_currency: str | None = None,
) -> ComparisonResult:
    """
    Compare quotes criterion by criterion.

    Rules:
        - price: the minimum wins
        - rating: the maximum among rated providers wins; unrated never wins
        - verified: every verified provider is flagged
        - warranty: the maximum among quotes that state one wins
        - dates, duration and validity are informational only
      Ties flag every tied quote.

    Args:
        quotes: Quotes of a single RFQ
        expected_currency: The RFQ currency, checked against every quote

    Returns:
        ComparisonResult: Rows in canonical order (price, then quote id)

    Raises:
        DataIntegrityException: Quotes do not share one currency
    """
    currency = _common_currency(quotes, expected_currency)

    if not quotes:
        return ComparisonResult(rows=[], statistics=PriceStatistics(currency=currency))

    prices = [q.price for q in quotes]
    lowest = min(prices)
    highest = max(prices)
    average = (sum(prices, Decimal(0)) / len(prices)).quantize(CENT, rounding=ROUND_HALF_UP)

    ratings = [q.provider_rating for q in quotes if q.provider_rating is not None]
    best_rating = max(ratings) if ratings else None

    warranties = [q.warranty_period_days for q in quotes if q.warranty_period_days is not None]
    best_warranty = max(warranties) if warranties else None

    rows = [
        ComparisonRow(
            quote=q,
            is_best_price=q.price == lowest,
            is_best_rating=best_rating is not None and q.provider_rating == best_rating,
            is_best_warranty=best_warranty is not None and q.warranty_period_days == best_warranty,
            is_verified=q.provider_verified,
        )
        for q in sorted(quotes, key=lambda q: (q.price, str(q.quote_id)))
    ]

    return ComparisonResult(
        rows=rows,
        statistics=PriceStatistics(
            count=len(quotes),
            currency=currency,
            lowest=lowest,
            highest=highest,
            average=average,
        ),
    )
